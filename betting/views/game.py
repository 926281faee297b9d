import logging

from rest_framework import status
from rest_framework.exceptions import ValidationError
from rest_framework.generics import ListAPIView, RetrieveAPIView
from rest_framework.response import Response
from rest_framework.views import APIView

from betting.exceptions import BettingError
from betting.models import Game, Participant
from betting.serializers import (
    GameDetailSerializer,
    GameSerializer,
    JoinGameSerializer,
    SettlementClaimSerializer,
)
from betting.services import GameService
from betting.views.base import CallerMixin, error_response

logger = logging.getLogger(__name__)


class GameListView(ListAPIView):
    """
    GET /games/ - Waiting games, oldest first.

    Query params:
        - stake: Only games at this stake tier.
    """

    serializer_class = GameSerializer

    def get_queryset(self):
        stake = self.request.query_params.get("stake")
        if stake is None:
            return Game.waiting().select_related("winner")
        if not stake.isdigit():
            raise ValidationError({"stake": "Stake must be a whole number."})
        return Game.waiting(int(stake)).select_related("winner")


class GameDetailView(RetrieveAPIView):
    """GET /games/<id>/ - One game with every participant's payout."""

    serializer_class = GameDetailSerializer
    queryset = Game.objects.select_related("winner").prefetch_related(
        "participants__account"
    )
    lookup_field = "id"


class JoinGameView(CallerMixin, APIView):
    """
    POST /games/join/ - Buy a seat at a stake tier.

    Request body: {"stake": <int>}
    The response carries the game; if this seat filled it, the game comes
    back already settled.
    """

    def post(self, request, *args, **kwargs):
        serializer = JoinGameSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            result = GameService.join_game(
                request.account_id, serializer.validated_data["stake"]
            )
        except BettingError as exc:
            return error_response(exc)
        except ValueError as exc:
            return Response({"error": str(exc)}, status=status.HTTP_400_BAD_REQUEST)

        return Response(
            {
                "game": GameDetailSerializer(result.game).data,
                "balance": result.balance,
                "settled": result.settled,
            },
            status=status.HTTP_201_CREATED,
        )


class SettlementClaimView(CallerMixin, APIView):
    """GET /games/<id>/result/ - The caller's result in a finished game."""

    def get(self, request, id, *args, **kwargs):
        try:
            claim = GameService.claim_settlement_result(id, request.account_id)
        except Participant.DoesNotExist:
            return Response(
                {"error": "You did not play in this game."},
                status=status.HTTP_404_NOT_FOUND,
            )
        except BettingError as exc:
            return error_response(exc)

        return Response(SettlementClaimSerializer(claim).data)
