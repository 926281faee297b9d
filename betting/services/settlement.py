import logging
from dataclasses import dataclass
from typing import Dict

from django.db import transaction
from django.utils import timezone

from betting.exceptions import AlreadySettled, GameNotReady
from betting.models import Account, Game, Transaction
from betting.services.ledger import LedgerService
from betting.services.outcome import OutcomeGenerator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SettlementResult:
    game: Game
    winner: Account
    # user_id -> amount credited at settlement
    payouts: Dict[str, int]


class SettlementService:
    """
    Closes full games: picks the winner, pays every participant, marks the
    game completed.

    The whole settlement is one database transaction. The game row is locked
    first, every payout goes through the ledger, and the final status change
    is an UPDATE conditioned on the game still being WAITING. If that
    compare-and-swap matches no row another settlement (or cancellation) got
    there first and everything done here is rolled back. If any payout fails
    the game stays WAITING and settlement can simply be run again.
    """

    @staticmethod
    @transaction.atomic
    def settle(game_id: int) -> SettlementResult:
        """
        Settle a full game exactly once.

        Raises:
            Game.DoesNotExist: If no game has this id.
            AlreadySettled: If the game already left the WAITING state.
            GameNotReady: If the game has open seats.
        """
        game = Game.objects.select_for_update().get(pk=game_id)

        if game.status != Game.Status.WAITING:
            raise AlreadySettled()
        if game.current_players < game.capacity:
            raise GameNotReady()

        participants = list(game.participants.select_related("account"))
        winning_seat = participants[OutcomeGenerator.pick_winner(len(participants))]

        # Credit in account id order so concurrent settlements of games with
        # shared players take account row locks in the same order.
        payouts = {}
        for participant in sorted(participants, key=lambda p: p.account_id):
            is_winner = participant.pk == winning_seat.pk
            amount = participant.payout(is_winner)
            if amount > 0:
                LedgerService.adjust_balance(
                    participant.account.user_id,
                    amount,
                    Transaction.Kind.GAME_WIN if is_winner else Transaction.Kind.GAME_LOSS,
                    reference_id=game.id,
                    unit=participant.account.unit,
                )
            participant.amount_won = amount
            participant.is_winner = is_winner
            participant.save(update_fields=["amount_won", "is_winner", "updated_at"])
            payouts[participant.account.user_id] = amount

        winner = winning_seat.account
        completed_at = timezone.now()
        claimed = Game.objects.filter(pk=game.pk, status=Game.Status.WAITING).update(
            status=Game.Status.COMPLETED,
            winner=winner,
            completed_at=completed_at,
            updated_at=completed_at,
        )
        if not claimed:
            raise AlreadySettled()

        game.refresh_from_db()
        logger.info(
            "Game settled: game=%d winner=%s stake=%d players=%d paid_out=%d",
            game.id,
            winner.user_id,
            game.stake,
            len(participants),
            sum(payouts.values()),
        )
        return SettlementResult(game=game, winner=winner, payouts=payouts)

    @staticmethod
    @transaction.atomic
    def cancel(game_id: int) -> Game:
        """
        Cancel a waiting game and refund every participant's stake.

        Uses the same lock and WAITING compare-and-swap as settle(), so a game
        is either settled or cancelled, never both.

        Raises:
            AlreadySettled: If the game already left the WAITING state.
        """
        game = Game.objects.select_for_update().get(pk=game_id)
        if game.status != Game.Status.WAITING:
            raise AlreadySettled()

        participants = list(game.participants.select_related("account"))
        for participant in sorted(participants, key=lambda p: p.account_id):
            LedgerService.adjust_balance(
                participant.account.user_id,
                participant.amount_paid,
                Transaction.Kind.REFUND,
                reference_id=game.id,
                unit=participant.account.unit,
            )

        now = timezone.now()
        claimed = Game.objects.filter(pk=game.pk, status=Game.Status.WAITING).update(
            status=Game.Status.CANCELLED,
            completed_at=now,
            updated_at=now,
        )
        if not claimed:
            raise AlreadySettled()

        game.refresh_from_db()
        logger.info(
            "Game cancelled: game=%d stake=%d refunded=%d",
            game.id,
            game.stake,
            len(participants),
        )
        return game
