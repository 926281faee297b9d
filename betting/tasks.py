import logging

from celery import shared_task
from django.conf import settings
from django.db import OperationalError

from betting.conf import get_game_config
from betting.exceptions import AlreadySettled
from betting.models import Game, Withdrawal
from betting.services import SettlementService, WithdrawalService

logger = logging.getLogger(__name__)


@shared_task(bind=True, acks_late=True, max_retries=3, default_retry_delay=30)
def process_single_withdrawal(self, withdrawal_id: int):
    """
    Execute one withdrawal.

    acks_late keeps the message on the broker until the task finishes, so a
    worker crash mid-payout leaves the withdrawal to be picked up again.
    """
    try:
        logger.info("Processing withdrawal withdrawal_id=%d", withdrawal_id)
        withdrawal = WithdrawalService.execute(withdrawal_id)
    except Withdrawal.DoesNotExist:
        logger.error("Withdrawal %d not found or already processed.", withdrawal_id)
        return {"withdrawal_id": withdrawal_id, "status": "NOT_FOUND"}
    except OperationalError as exc:
        logger.warning(
            "Storage error processing withdrawal=%d, retrying: %s", withdrawal_id, exc
        )
        raise self.retry(exc=exc, countdown=2**self.request.retries * 10)

    return {"withdrawal_id": withdrawal_id, "status": withdrawal.status}


@shared_task
def process_pending_withdrawals():
    """Dispatch every pending withdrawal whose scheduled time has arrived."""
    due_ids = list(Withdrawal.get_due_pending().values_list("id", flat=True))
    if not due_ids:
        return {"dispatched": 0}

    logger.info("Found %d pending withdrawal(s) due for processing.", len(due_ids))
    for withdrawal_id in due_ids:
        process_single_withdrawal.delay(withdrawal_id)
    return {"dispatched": len(due_ids)}


@shared_task
def retry_failed_withdrawals():
    """Re-dispatch failed withdrawals that still have retries left."""
    max_retries = getattr(settings, "WITHDRAWAL_MAX_RETRIES", 3)
    failed_ids = list(
        Withdrawal.get_failed_retryable(max_retries=max_retries).values_list(
            "id", flat=True
        )
    )
    if not failed_ids:
        return {"dispatched": 0}

    logger.info("Found %d failed withdrawal(s) eligible for retry.", len(failed_ids))
    for withdrawal_id in failed_ids:
        process_single_withdrawal.delay(withdrawal_id)
    return {"dispatched": len(failed_ids)}


@shared_task
def settle_full_games():
    """
    Settle games that reached capacity but were never completed.

    The joining request normally settles its game; this sweep covers a
    request that died or failed between the last admission and settlement.
    """
    game_ids = list(Game.get_full_unsettled().values_list("id", flat=True))
    settled = 0
    for game_id in game_ids:
        try:
            SettlementService.settle(game_id)
            settled += 1
        except AlreadySettled:
            logger.info("Sweep lost settlement race: game=%d", game_id)
        except OperationalError as exc:
            logger.warning("Sweep could not settle game=%d: %s", game_id, exc)
        except Exception:
            logger.exception("Sweep failed to settle game=%d", game_id)

    if settled:
        logger.info("Sweep settled %d game(s).", settled)
    return {"found": len(game_ids), "settled": settled}


@shared_task
def expire_stale_games():
    """Cancel and refund waiting games older than GAME_EXPIRY_MINUTES, if set."""
    minutes = get_game_config().expiry_minutes
    if minutes is None:
        return {"expired": 0}

    game_ids = list(Game.get_expired(minutes).values_list("id", flat=True))
    expired = 0
    for game_id in game_ids:
        try:
            SettlementService.cancel(game_id)
            expired += 1
        except AlreadySettled:
            logger.info("Expiry lost race to settlement: game=%d", game_id)
        except OperationalError as exc:
            logger.warning("Expiry could not cancel game=%d: %s", game_id, exc)
        except Exception:
            logger.exception("Expiry failed to cancel game=%d", game_id)

    if expired:
        logger.info("Expired %d stale game(s).", expired)
    return {"expired": expired}
