import logging
from dataclasses import dataclass
from decimal import Decimal

from django.db import transaction

from betting.conf import get_game_config
from betting.models import Account, FlipRound, Transaction
from betting.services.ledger import LedgerService
from betting.services.outcome import OutcomeGenerator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FlipResult:
    round: FlipRound
    balance: int


class FlipService:
    """
    Single-player heads/tails bets paid from the COIN account.

    The bet debit, the outcome record and the winnings credit are one
    database transaction; an insufficient balance rolls back the whole round.
    """

    @staticmethod
    @transaction.atomic
    def play(user_id: str, choice: str, bet: int, multiplier=None) -> FlipResult:
        """
        Bet coins on one flip.

        Args:
            user_id: Stable id of the player.
            choice: "heads" or "tails" (case-insensitive).
            bet: Whole coins to stake.
            multiplier: Requested payout multiplier; defaults to, and may not
                exceed, the configured single-flip multiplier.

        Returns:
            FlipResult with the stored round and the resulting coin balance.

        Raises:
            InsufficientFunds: If the coin balance cannot cover the bet.
            ValueError: On an invalid choice, bet or multiplier.
        """
        config = get_game_config()

        choice = (choice or "").strip().lower()
        if choice not in FlipRound.Side.values:
            raise ValueError("Choice must be 'heads' or 'tails'.")

        if not config.min_bet <= bet <= config.max_bet:
            raise ValueError(
                f"Bet must be between {config.min_bet} and {config.max_bet} coins."
            )

        if multiplier is None:
            multiplier = config.single_flip_multiplier
        multiplier = Decimal(str(multiplier))
        if multiplier <= 1 or multiplier > config.single_flip_multiplier:
            raise ValueError(
                f"Multiplier must be above 1 and at most {config.single_flip_multiplier}."
            )

        account = LedgerService.get_account(user_id, Account.Unit.COIN)
        result = OutcomeGenerator.flip()
        is_winner = result == choice
        payout = int(Decimal(bet) * multiplier) if is_winner else 0

        flip_round = FlipRound.objects.create(
            account=account,
            choice=choice,
            result=result,
            is_winner=is_winner,
            bet=bet,
            payout=payout,
            multiplier=multiplier,
        )

        tx = LedgerService.adjust_balance(
            user_id,
            -bet,
            Transaction.Kind.GAME_ENTRY,
            reference_id=f"flip-{flip_round.id}",
            unit=Account.Unit.COIN,
        )
        if payout:
            tx = LedgerService.adjust_balance(
                user_id,
                payout,
                Transaction.Kind.GAME_WIN,
                reference_id=f"flip-{flip_round.id}",
                unit=Account.Unit.COIN,
            )

        logger.info(
            "Flip played: user=%s round=%d choice=%s result=%s bet=%d payout=%d",
            user_id,
            flip_round.id,
            choice,
            result,
            bet,
            payout,
        )
        return FlipResult(round=flip_round, balance=tx.balance_after)
