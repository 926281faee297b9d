from django.db import models
from django.utils import timezone

from betting.models.account import Account
from betting.models.base import TimestampedModel


class Withdrawal(TimestampedModel):
    """
    A request to pay currency out to the owner's bank account.

    Requests are created PENDING and executed by the Celery scheduler once
    `scheduled_for` has passed. The balance is debited only at execution
    time, in the same database transaction as the bank call; a failed bank
    call leaves no ledger entry behind and marks the request FAILED so it can
    be retried. The bank response is stored for auditing.
    """

    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        PROCESSING = "PROCESSING", "Processing"
        COMPLETED = "COMPLETED", "Completed"
        FAILED = "FAILED", "Failed"

    account = models.ForeignKey(
        Account,
        on_delete=models.PROTECT,
        related_name="withdrawals",
    )
    amount = models.PositiveBigIntegerField()
    status = models.CharField(
        max_length=10,
        choices=Status.choices,
        default=Status.PENDING,
    )
    scheduled_for = models.DateTimeField(default=timezone.now)
    executed_at = models.DateTimeField(null=True, blank=True)
    third_party_response = models.JSONField(null=True, blank=True)
    retry_count = models.PositiveIntegerField(default=0)
    idempotency_key = models.UUIDField(
        unique=True,
        null=True,
        blank=True,
        editable=False,
        help_text="Client-generated UUID for idempotency.",
    )

    class Meta(TimestampedModel.Meta):
        indexes = [
            models.Index(
                fields=["status", "scheduled_for"], name="idx_wd_status_scheduled"
            ),
        ]

    def __str__(self):
        return f"Withdrawal {self.id} | {self.amount} | {self.status}"

    @classmethod
    def get_due_pending(cls):
        return cls.objects.filter(
            status=cls.Status.PENDING,
            scheduled_for__lte=timezone.now(),
        )

    @classmethod
    def get_failed_retryable(cls, max_retries=3):
        return cls.objects.filter(
            status=cls.Status.FAILED,
            retry_count__lt=max_retries,
        )
