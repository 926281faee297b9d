from django.db import models

from betting.models.account import Account
from betting.models.base import TimestampedModel


class FlipRound(TimestampedModel):
    """
    One single-player coin flip, recorded for audit and history.

    The ledger entries for the bet and the winnings reference this row's id.
    """

    class Side(models.TextChoices):
        HEADS = "heads", "Heads"
        TAILS = "tails", "Tails"

    account = models.ForeignKey(
        Account,
        on_delete=models.PROTECT,
        related_name="flip_rounds",
    )
    choice = models.CharField(max_length=5, choices=Side.choices)
    result = models.CharField(max_length=5, choices=Side.choices)
    is_winner = models.BooleanField()
    bet = models.PositiveBigIntegerField()
    payout = models.PositiveBigIntegerField(default=0)
    multiplier = models.DecimalField(max_digits=6, decimal_places=3)

    def __str__(self):
        outcome = "won" if self.is_winner else "lost"
        return f"Flip {self.id} | {self.choice}->{self.result} | {outcome}"
