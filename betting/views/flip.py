import logging

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from betting.exceptions import BettingError
from betting.serializers import FlipRequestSerializer, FlipRoundSerializer
from betting.services import GameService
from betting.views.base import CallerMixin, error_response

logger = logging.getLogger(__name__)


class FlipView(CallerMixin, APIView):
    """
    POST /flips/ - Bet coins on one secure coin flip.

    Request body: {"choice": "heads"|"tails", "bet": <int>, "multiplier": <decimal> (optional)}
    """

    def post(self, request, *args, **kwargs):
        serializer = FlipRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            result = GameService.play_single_flip(
                request.account_id,
                data["choice"],
                data["bet"],
                data.get("multiplier"),
            )
        except BettingError as exc:
            return error_response(exc)
        except ValueError as exc:
            return Response({"error": str(exc)}, status=status.HTTP_400_BAD_REQUEST)

        return Response(
            {
                "round": FlipRoundSerializer(result.round).data,
                "balance": result.balance,
            },
            status=status.HTTP_201_CREATED,
        )
