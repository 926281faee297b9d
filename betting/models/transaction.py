from django.db import models
from django.db.models import Sum

from betting.models.account import Account
from betting.models.base import TimestampedModel


class Transaction(TimestampedModel):
    """
    Append-only ledger entry paired 1:1 with a balance change.

    `amount` is signed: debits are negative, credits positive. Each entry
    snapshots the balance on either side of the change, so for every account
    the completed entries read in order form an unbroken chain ending at the
    current balance. Entries are written by the ledger service only and are
    never updated after they reach a terminal status.
    """

    class Kind(models.TextChoices):
        DEPOSIT = "DEPOSIT", "Deposit"
        WITHDRAWAL = "WITHDRAWAL", "Withdrawal"
        GAME_ENTRY = "GAME_ENTRY", "Game entry"
        GAME_WIN = "GAME_WIN", "Game win"
        GAME_LOSS = "GAME_LOSS", "Game loss refund"
        REFUND = "REFUND", "Refund"

    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        COMPLETED = "COMPLETED", "Completed"
        FAILED = "FAILED", "Failed"

    account = models.ForeignKey(
        Account,
        on_delete=models.PROTECT,
        related_name="transactions",
    )
    kind = models.CharField(max_length=12, choices=Kind.choices)
    amount = models.BigIntegerField()
    balance_before = models.BigIntegerField()
    balance_after = models.BigIntegerField()
    status = models.CharField(
        max_length=10,
        choices=Status.choices,
        default=Status.COMPLETED,
    )
    reference_id = models.CharField(
        max_length=128,
        blank=True,
        default="",
        help_text="Game, flip round or withdrawal this entry belongs to.",
    )
    external_reference = models.CharField(
        max_length=128,
        unique=True,
        null=True,
        blank=True,
        editable=False,
        help_text="Payment provider reference; unique so a payment credits once.",
    )

    class Meta(TimestampedModel.Meta):
        indexes = [
            models.Index(fields=["account", "kind"], name="idx_account_kind"),
            models.Index(fields=["reference_id"], name="idx_reference"),
        ]

    def __str__(self):
        return (
            f"Transaction {self.id} | {self.kind} | "
            f"{self.amount} | {self.status}"
        )

    @classmethod
    def completed_total(cls, account):
        """Sum of completed entry amounts for an account (0 when empty)."""
        total = cls.objects.filter(
            account=account, status=cls.Status.COMPLETED
        ).aggregate(total=Sum("amount"))["total"]
        return total or 0
