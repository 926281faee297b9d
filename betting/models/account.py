from django.db import models

from betting.models.base import TimestampedModel


class Account(TimestampedModel):
    """
    A balance held by one user in one unit.

    Every user owns at most one account per unit: CURRENCY funds the
    multiplayer lobby, COIN funds the single-player flip. Accounts are created
    at zero on first reference. The balance is only ever written by the ledger
    service, under a row lock, together with a matching ledger entry; the
    column itself is unsigned so the database rejects a negative balance.
    """

    class Unit(models.TextChoices):
        CURRENCY = "CURRENCY", "Currency"
        COIN = "COIN", "Coin"

    user_id = models.CharField(
        max_length=128,
        help_text="Stable id issued by the identity provider.",
    )
    unit = models.CharField(
        max_length=10,
        choices=Unit.choices,
        default=Unit.CURRENCY,
    )
    balance = models.PositiveBigIntegerField(default=0)

    class Meta(TimestampedModel.Meta):
        constraints = [
            models.UniqueConstraint(
                fields=["user_id", "unit"], name="uniq_account_user_unit"
            ),
        ]

    def __str__(self):
        return f"Account {self.user_id}/{self.unit} (balance={self.balance})"
