from rest_framework.response import Response
from rest_framework.views import APIView

from betting.conf import get_game_config


class GameConfigView(APIView):
    """GET /config/ - Active stake tiers, capacity and payout multipliers."""

    def get(self, request, *args, **kwargs):
        config = get_game_config()
        return Response(
            {
                "stake_tiers": list(config.stake_tiers),
                "capacity": config.capacity,
                "win_multiplier": str(config.win_multiplier),
                "loss_refund_multiplier": str(config.loss_refund_multiplier),
                "single_flip_multiplier": str(config.single_flip_multiplier),
                "min_bet": config.min_bet,
                "max_bet": config.max_bet,
                "expiry_minutes": config.expiry_minutes,
            }
        )
