import logging

from django.conf import settings
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from betting.exceptions import InsufficientFunds
from betting.models import Transaction, Withdrawal
from betting.services.ledger import LedgerService
from betting.utils import request_bank_payout

logger = logging.getLogger(__name__)


class PayoutRejected(Exception):
    """Raised inside the payout savepoint to undo the debit."""

    def __init__(self, response):
        self.response = response
        super().__init__("Bank payout rejected.")


class WithdrawalService:
    """
    Schedules and executes currency payouts to the owner's bank.

    Scheduling only records the request. Execution locks the request, debits
    the account through the ledger and calls the bank, all inside a savepoint:
    if the balance is short or the bank refuses, the savepoint is rolled back
    so neither the debit nor its ledger entry survive, and the request is
    marked FAILED for a later retry.
    """

    @staticmethod
    @transaction.atomic
    def schedule(
        user_id: str, amount: int, scheduled_for=None, idempotency_key: str = None
    ) -> Withdrawal:
        """
        Record a withdrawal request.

        Balance is checked for a fast failure here and checked again, under
        the account lock, when the withdrawal executes.

        Raises:
            InsufficientFunds: If the balance is already below the amount.
            ValueError: If amount is below the minimum or the time is in the past.
        """
        minimum = getattr(settings, "WITHDRAWAL_MIN_AMOUNT", 100)
        if amount < minimum:
            raise ValueError(f"Minimum withdrawal amount is {minimum}.")

        if scheduled_for is not None and scheduled_for < timezone.now():
            raise ValueError("Scheduled time must not be in the past.")

        if idempotency_key:
            existing = Withdrawal.objects.filter(idempotency_key=idempotency_key).first()
            if existing:
                logger.info(
                    "Idempotent withdrawal request: key=%s withdrawal=%d",
                    idempotency_key,
                    existing.id,
                )
                return existing

        account = LedgerService.get_account(user_id)
        if account.balance < amount:
            raise InsufficientFunds(balance=account.balance, requested=amount)

        withdrawal = Withdrawal.objects.create(
            account=account,
            amount=amount,
            scheduled_for=scheduled_for or timezone.now(),
            idempotency_key=idempotency_key,
        )

        logger.info(
            "Withdrawal scheduled: user=%s amount=%d scheduled_for=%s withdrawal=%d",
            user_id,
            amount,
            withdrawal.scheduled_for,
            withdrawal.id,
        )
        return withdrawal

    @staticmethod
    @transaction.atomic
    def execute(withdrawal_id: int) -> Withdrawal:
        """
        Execute a pending or previously failed withdrawal.

        Returns:
            The updated Withdrawal (COMPLETED or FAILED).

        Raises:
            Withdrawal.DoesNotExist: If no executable withdrawal has this id.
        """
        withdrawal = (
            Withdrawal.objects.select_for_update()
            .select_related("account")
            .get(
                id=withdrawal_id,
                status__in=[Withdrawal.Status.PENDING, Withdrawal.Status.FAILED],
            )
        )
        withdrawal.status = Withdrawal.Status.PROCESSING
        withdrawal.save(update_fields=["status", "updated_at"])

        user_id = withdrawal.account.user_id
        try:
            with transaction.atomic():
                LedgerService.adjust_balance(
                    user_id,
                    -withdrawal.amount,
                    Transaction.Kind.WITHDRAWAL,
                    reference_id=f"withdrawal-{withdrawal.id}",
                )
                result = request_bank_payout(user_id=user_id, amount=withdrawal.amount)
                if not result.success:
                    raise PayoutRejected(result.response)
        except InsufficientFunds as exc:
            return WithdrawalService._fail(
                withdrawal,
                {"error": "Insufficient balance", "balance": exc.balance},
            )
        except PayoutRejected as exc:
            return WithdrawalService._fail(withdrawal, exc.response)

        withdrawal.status = Withdrawal.Status.COMPLETED
        withdrawal.executed_at = timezone.now()
        withdrawal.third_party_response = result.response
        withdrawal.save(
            update_fields=["status", "executed_at", "third_party_response", "updated_at"]
        )
        logger.info(
            "Withdrawal completed: user=%s amount=%d withdrawal=%d",
            user_id,
            withdrawal.amount,
            withdrawal.id,
        )
        return withdrawal

    @staticmethod
    def _fail(withdrawal: Withdrawal, response) -> Withdrawal:
        withdrawal.status = Withdrawal.Status.FAILED
        withdrawal.executed_at = timezone.now()
        withdrawal.retry_count = F("retry_count") + 1
        withdrawal.third_party_response = response
        withdrawal.save(
            update_fields=[
                "status",
                "executed_at",
                "retry_count",
                "third_party_response",
                "updated_at",
            ]
        )
        withdrawal.refresh_from_db()

        logger.warning(
            "Withdrawal failed: user=%s amount=%d withdrawal=%d retry_count=%d "
            "response=%s",
            withdrawal.account.user_id,
            withdrawal.amount,
            withdrawal.id,
            withdrawal.retry_count,
            response,
        )
        return withdrawal
