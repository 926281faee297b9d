from datetime import timedelta
from decimal import Decimal

from django.db import models
from django.db.models import Sum
from django.utils import timezone

from betting.models.account import Account
from betting.models.base import TimestampedModel


class Game(TimestampedModel):
    """
    One multiplayer round at a fixed stake.

    Lifecycle: WAITING until the last seat is taken, then COMPLETED by the
    settlement service exactly once. When game expiry is enabled a WAITING
    game may instead become CANCELLED (all stakes refunded). Both terminal
    transitions are conditional updates on `status=WAITING`, so at most one
    of them can ever win.

    Payout multipliers are copied from configuration when the game is created
    and never change afterwards.
    """

    class Status(models.TextChoices):
        WAITING = "WAITING", "Waiting"
        COMPLETED = "COMPLETED", "Completed"
        CANCELLED = "CANCELLED", "Cancelled"

    stake = models.PositiveBigIntegerField()
    capacity = models.PositiveIntegerField()
    current_players = models.PositiveIntegerField(default=0)
    status = models.CharField(
        max_length=10,
        choices=Status.choices,
        default=Status.WAITING,
    )
    win_multiplier = models.DecimalField(max_digits=6, decimal_places=3)
    loss_refund_multiplier = models.DecimalField(max_digits=6, decimal_places=3)
    winner = models.ForeignKey(
        Account,
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="games_won",
    )
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta(TimestampedModel.Meta):
        indexes = [
            models.Index(
                fields=["status", "stake", "created_at"], name="idx_game_lobby"
            ),
        ]

    def __str__(self):
        return (
            f"Game {self.id} | stake={self.stake} | "
            f"{self.current_players}/{self.capacity} | {self.status}"
        )

    @property
    def is_full(self):
        return self.current_players >= self.capacity

    @property
    def total_collected(self):
        return self.stake * self.current_players

    @property
    def total_paid_out(self):
        total = self.participants.aggregate(total=Sum("amount_won"))["total"]
        return total or 0

    @property
    def house_margin(self):
        """Stakes kept by the house; only meaningful once settled."""
        return self.total_collected - self.total_paid_out

    @classmethod
    def waiting(cls, stake=None):
        """Open games, oldest first, optionally for one stake tier."""
        qs = cls.objects.filter(status=cls.Status.WAITING)
        if stake is not None:
            qs = qs.filter(stake=stake)
        return qs.order_by("created_at", "id")

    @classmethod
    def get_full_unsettled(cls):
        """Games that reached capacity but whose settlement has not committed."""
        return cls.waiting().filter(current_players__gte=models.F("capacity"))

    @classmethod
    def get_expired(cls, minutes, now=None):
        cutoff = (now or timezone.now()) - timedelta(minutes=minutes)
        return cls.waiting().filter(
            created_at__lt=cutoff, current_players__lt=models.F("capacity")
        )


class Participant(TimestampedModel):
    """
    A player's seat in one game.

    `amount_paid` is the stake debited at join time. `amount_won` and
    `is_winner` are written once, by settlement, in the same transaction
    that completes the game.
    """

    game = models.ForeignKey(
        Game,
        on_delete=models.PROTECT,
        related_name="participants",
    )
    account = models.ForeignKey(
        Account,
        on_delete=models.PROTECT,
        related_name="participations",
    )
    amount_paid = models.PositiveBigIntegerField()
    amount_won = models.PositiveBigIntegerField(default=0)
    is_winner = models.BooleanField(default=False)

    class Meta(TimestampedModel.Meta):
        ordering = ["created_at", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["game", "account"], name="uniq_participant_game_account"
            ),
        ]

    def __str__(self):
        return f"Participant {self.account.user_id} in game {self.game_id}"

    def payout(self, is_winner):
        """Amount credited back at settlement, rounded down to whole units."""
        multiplier = (
            self.game.win_multiplier if is_winner else self.game.loss_refund_multiplier
        )
        return int(Decimal(self.amount_paid) * multiplier)
