from django.conf import settings
from django.utils import timezone
from rest_framework import serializers

from betting.models import Withdrawal


class WithdrawSerializer(serializers.Serializer):
    """Validates withdrawal requests."""

    amount = serializers.IntegerField(min_value=1)
    scheduled_for = serializers.DateTimeField(required=False)

    def validate_amount(self, value):
        minimum = getattr(settings, "WITHDRAWAL_MIN_AMOUNT", 100)
        if value < minimum:
            raise serializers.ValidationError(
                f"Minimum withdrawal amount is {minimum}."
            )
        return value

    def validate_scheduled_for(self, value):
        if value < timezone.now():
            raise serializers.ValidationError("Scheduled time must not be in the past.")
        return value


class WithdrawalSerializer(serializers.ModelSerializer):
    user_id = serializers.CharField(source="account.user_id", read_only=True)

    class Meta:
        model = Withdrawal
        fields = (
            "id",
            "user_id",
            "amount",
            "status",
            "scheduled_for",
            "executed_at",
            "retry_count",
            "created_at",
        )
        read_only_fields = fields
