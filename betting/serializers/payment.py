from rest_framework import serializers

from betting.models import Account


class PaymentConfirmationSerializer(serializers.Serializer):
    """
    A verified payment from the gateway.

    `amount` is in whole currency units. When `unit` is COIN the payment
    buys coins and is converted at COIN_PRICE.
    """

    reference = serializers.CharField(max_length=128)
    account_id = serializers.CharField(max_length=128)
    amount = serializers.IntegerField(min_value=1)
    unit = serializers.ChoiceField(
        choices=Account.Unit.choices, default=Account.Unit.CURRENCY
    )
