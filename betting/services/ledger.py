import logging

from django.db import IntegrityError, transaction
from django.db.models import F

from betting.exceptions import DuplicateReference, InsufficientFunds
from betting.models import Account, Transaction

logger = logging.getLogger(__name__)


class LedgerService:
    """
    The only writer of account balances.

    Every balance change runs inside one database transaction that locks the
    account row with select_for_update(), checks the new balance, applies the
    delta with an F() expression and appends the matching ledger entry. A
    failure anywhere rolls back both writes, so a balance never moves without
    its entry and an entry never exists without its balance change.

    Callers that need several adjustments to succeed or fail together (game
    entry plus admission, settlement payouts) call these methods from inside
    their own transaction.atomic() block; the nested block becomes a savepoint
    of the outer transaction.
    """

    @staticmethod
    def get_account(user_id: str, unit: str = Account.Unit.CURRENCY) -> Account:
        """Return the user's account for a unit, creating it at zero if absent."""
        account, created = Account.objects.get_or_create(user_id=user_id, unit=unit)
        if created:
            logger.info("Account created: user=%s unit=%s", user_id, unit)
        return account

    @staticmethod
    def get_balance(user_id: str, unit: str = Account.Unit.CURRENCY) -> int:
        """Latest committed balance; 0 for a user never seen before."""
        balance = (
            Account.objects.filter(user_id=user_id, unit=unit)
            .values_list("balance", flat=True)
            .first()
        )
        return balance or 0

    @staticmethod
    @transaction.atomic
    def adjust_balance(
        user_id: str,
        delta: int,
        kind: str,
        reference_id: str = "",
        unit: str = Account.Unit.CURRENCY,
        external_reference: str = None,
    ) -> Transaction:
        """
        Apply a signed delta to an account and record it.

        The spend check runs against the balance read under the row lock, not
        against any value the caller saw earlier.

        Args:
            user_id: Stable id of the account owner.
            delta: Non-zero signed amount; negative for debits.
            kind: A Transaction.Kind value.
            reference_id: Game, flip round or withdrawal the change belongs to.
            unit: Which of the user's accounts to adjust.
            external_reference: Payment provider reference (deposits only).

        Returns:
            The COMPLETED Transaction; its balance_after is the new balance.

        Raises:
            InsufficientFunds: If a debit would take the balance below zero.
            ValueError: If delta is zero.
        """
        if delta == 0:
            raise ValueError("Adjustment amount must be non-zero.")

        account = LedgerService.get_account(user_id, unit)

        # Lock the account row; concurrent adjustments queue here.
        account = Account.objects.select_for_update().get(pk=account.pk)
        balance_before = account.balance

        if balance_before + delta < 0:
            logger.warning(
                "Insufficient funds: user=%s unit=%s balance=%d delta=%d kind=%s",
                user_id,
                unit,
                balance_before,
                delta,
                kind,
            )
            raise InsufficientFunds(balance=balance_before, requested=-delta)

        Account.objects.filter(pk=account.pk).update(balance=F("balance") + delta)
        account.refresh_from_db(fields=["balance"])

        tx = Transaction.objects.create(
            account=account,
            kind=kind,
            amount=delta,
            balance_before=balance_before,
            balance_after=account.balance,
            status=Transaction.Status.COMPLETED,
            reference_id=str(reference_id or ""),
            external_reference=external_reference,
        )

        logger.info(
            "Balance adjusted: user=%s unit=%s kind=%s delta=%d balance=%d->%d "
            "ref=%s tx=%d",
            user_id,
            unit,
            kind,
            delta,
            balance_before,
            account.balance,
            tx.reference_id,
            tx.id,
        )
        return tx

    @staticmethod
    def record_external_deposit(
        user_id: str,
        amount: int,
        external_reference: str,
        unit: str = Account.Unit.CURRENCY,
    ) -> Transaction:
        """
        Credit a confirmed external payment exactly once.

        The provider reference is unique on the ledger, so a replayed
        confirmation (sequential or concurrent) can never credit twice.

        Raises:
            DuplicateReference: If the reference was already credited; carries
                the original transaction.
            ValueError: If amount is not positive or the reference is empty.
        """
        if amount <= 0:
            raise ValueError("Deposit amount must be positive.")
        if not external_reference:
            raise ValueError("External reference is required.")

        existing = Transaction.objects.filter(
            external_reference=external_reference
        ).first()
        if existing:
            LedgerService._log_duplicate(existing, user_id, amount)
            raise DuplicateReference(existing)

        try:
            return LedgerService.adjust_balance(
                user_id,
                amount,
                Transaction.Kind.DEPOSIT,
                reference_id=external_reference,
                unit=unit,
                external_reference=external_reference,
            )
        except IntegrityError:
            # A concurrent delivery of the same confirmation committed first.
            existing = Transaction.objects.get(external_reference=external_reference)
            LedgerService._log_duplicate(existing, user_id, amount)
            raise DuplicateReference(existing)

    @staticmethod
    def _log_duplicate(existing: Transaction, user_id: str, amount: int) -> None:
        if existing.amount != amount or existing.account.user_id != user_id:
            logger.warning(
                "Duplicate payment reference with different parameters: ref=%s "
                "existing_user=%s existing_amount=%d new_user=%s new_amount=%d",
                existing.external_reference,
                existing.account.user_id,
                existing.amount,
                user_id,
                amount,
            )
        logger.info(
            "Duplicate payment reference ignored: ref=%s tx=%d",
            existing.external_reference,
            existing.id,
        )
