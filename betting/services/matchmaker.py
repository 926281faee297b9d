import logging
from dataclasses import dataclass

from django.db import IntegrityError, transaction
from django.db.models import F

from betting.conf import get_game_config
from betting.exceptions import AlreadyJoined, GameFull
from betting.models import Game, Participant, Transaction
from betting.services.ledger import LedgerService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Admission:
    game: Game
    participant: Participant
    entry: Transaction
    # True only for the admission that took the last seat.
    filled: bool


class Matchmaker:
    """
    Seats paying players into waiting games.

    One admission is one database transaction: debit the stake, take a seat
    with a conditional increment of the player count, insert the participant
    row. If any step fails the whole transaction rolls back, so a player is
    never charged without a seat or seated without paying.
    """

    @staticmethod
    def join_or_create(user_id: str, stake: int, capacity: int = None) -> Admission:
        """
        Seat the user in the oldest open game for the stake, or a new one.

        Losing the race for a last seat (GameFull) is retried against a fresh
        selection; every other error is returned to the caller. `capacity`
        only applies when a new game has to be created.

        Raises:
            InsufficientFunds: If the user cannot cover the stake.
            AlreadyJoined: If the user already holds a seat in the selected game.
            GameFull: If every attempt lost its seat to a concurrent admission.
            ValueError: If the stake is not a configured tier.
        """
        config = get_game_config()
        if stake not in config.stake_tiers:
            raise ValueError(
                f"Stake must be one of {', '.join(str(t) for t in config.stake_tiers)}."
            )
        capacity = capacity or config.capacity
        if capacity < 2:
            raise ValueError("Capacity must be at least 2.")

        for attempt in range(1, config.max_admission_attempts + 1):
            try:
                return Matchmaker._join_once(user_id, stake, capacity)
            except GameFull:
                logger.info(
                    "Lost last seat, retrying selection: user=%s stake=%d attempt=%d",
                    user_id,
                    stake,
                    attempt,
                )

        logger.warning(
            "Admission gave up after %d attempts: user=%s stake=%d",
            config.max_admission_attempts,
            user_id,
            stake,
        )
        raise GameFull()

    @staticmethod
    @transaction.atomic
    def _join_once(user_id: str, stake: int, capacity: int) -> Admission:
        game = Matchmaker._select_game(stake)
        if game is None:
            config = get_game_config()
            game = Game.objects.create(
                stake=stake,
                capacity=capacity,
                win_multiplier=config.win_multiplier,
                loss_refund_multiplier=config.loss_refund_multiplier,
            )
            logger.info(
                "Game created: game=%d stake=%d capacity=%d", game.id, stake, capacity
            )
        return Matchmaker.admit(game, user_id)

    @staticmethod
    def _select_game(stake: int):
        """
        Oldest waiting game for the stake that still has an open seat.

        Capacity is not matched: a game keeps the capacity it was created
        with, so games opened before a GAME_CAPACITY change still fill.
        """
        return Game.waiting(stake).filter(current_players__lt=F("capacity")).first()

    @staticmethod
    @transaction.atomic
    def admit(game: Game, user_id: str) -> Admission:
        """
        Charge the user the game's stake and give them a seat.

        The seat is taken with an UPDATE conditioned on the game still
        waiting with a free seat; the database serializes concurrent updates
        of the row, so the player count can never pass capacity. Zero
        updated rows means another admission took the last seat.
        """
        account = LedgerService.get_account(user_id)
        if Participant.objects.filter(game=game, account=account).exists():
            raise AlreadyJoined()

        entry = LedgerService.adjust_balance(
            user_id,
            -game.stake,
            Transaction.Kind.GAME_ENTRY,
            reference_id=game.id,
        )

        seated = Game.objects.filter(
            pk=game.pk,
            status=Game.Status.WAITING,
            current_players__lt=F("capacity"),
        ).update(current_players=F("current_players") + 1)
        if not seated:
            logger.info("Game full on admission: game=%d user=%s", game.id, user_id)
            raise GameFull()

        try:
            with transaction.atomic():
                participant = Participant.objects.create(
                    game=game,
                    account=account,
                    amount_paid=game.stake,
                )
        except IntegrityError:
            # A concurrent request from the same user took a seat first.
            raise AlreadyJoined()

        game.refresh_from_db()
        filled = game.is_full

        logger.info(
            "Player admitted: game=%d user=%s players=%d/%d",
            game.id,
            user_id,
            game.current_players,
            game.capacity,
        )
        return Admission(game=game, participant=participant, entry=entry, filled=filled)
