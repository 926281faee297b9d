import logging
from dataclasses import dataclass
from functools import wraps

from django.db import OperationalError

from betting.conf import get_game_config
from betting.exceptions import AlreadySettled, GameNotSettled, StorageUnavailable
from betting.models import Game, Participant
from betting.services.flip import FlipService
from betting.services.ledger import LedgerService
from betting.services.matchmaker import Matchmaker
from betting.services.settlement import SettlementService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JoinResult:
    game: Game
    participant: Participant
    balance: int
    # True when this join filled the game and settlement ran in-request.
    settled: bool


@dataclass(frozen=True)
class SettlementClaim:
    game: Game
    participant: Participant


def storage_guarded(func):
    """Report a database outage or lock timeout as StorageUnavailable."""

    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except OperationalError as exc:
            logger.error("Storage error in %s: %s", func.__name__, exc)
            raise StorageUnavailable() from exc

    return wrapper


class GameService:
    """
    Entry points used by the API: join the lobby, flip a coin, read results.

    Holds no state of its own; every operation is delegated to the
    matchmaker, settlement or flip services, each of which commits as one
    database transaction and is safe to retry as a whole.
    """

    @staticmethod
    @storage_guarded
    def join_game(user_id: str, stake: int) -> JoinResult:
        """
        Buy a seat in the lobby for `stake`.

        The admission that takes the last seat settles the game right after
        its own transaction commits. If settlement fails here the game stays
        WAITING and the periodic settle_full_games task finishes it, so
        payment never depends on the player coming back.
        """
        config = get_game_config()
        admission = Matchmaker.join_or_create(user_id, stake, config.capacity)

        settled = False
        if admission.filled:
            settled = GameService.settle_quietly(admission.game.id)

        admission.game.refresh_from_db()
        admission.participant.refresh_from_db()
        return JoinResult(
            game=admission.game,
            participant=admission.participant,
            balance=LedgerService.get_balance(user_id),
            settled=settled,
        )

    @staticmethod
    def settle_quietly(game_id: int) -> bool:
        """
        Settle a game, absorbing the outcomes a trigger path should not report.

        Losing the settlement race is expected and only logged. Any other
        failure is logged and left to the periodic sweep.
        """
        try:
            SettlementService.settle(game_id)
        except AlreadySettled:
            logger.info("Settlement already done elsewhere: game=%d", game_id)
            return False
        except Exception:
            logger.exception("Settlement deferred to sweep: game=%d", game_id)
            return False
        return True

    @staticmethod
    @storage_guarded
    def play_single_flip(user_id: str, choice: str, bet: int, multiplier=None):
        return FlipService.play(user_id, choice, bet, multiplier)

    @staticmethod
    def claim_settlement_result(game_id: int, user_id: str) -> SettlementClaim:
        """
        Read a player's result for a finished game.

        Purely informational: payouts were already applied by settlement,
        and calling this any number of times changes nothing.

        Raises:
            Participant.DoesNotExist: If the user did not play in the game.
            GameNotSettled: If the game is still waiting.
        """
        participant = Participant.objects.select_related("game", "account").get(
            game_id=game_id, account__user_id=user_id
        )
        if participant.game.status == Game.Status.WAITING:
            raise GameNotSettled()
        return SettlementClaim(game=participant.game, participant=participant)
