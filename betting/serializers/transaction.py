from rest_framework import serializers

from betting.models import Transaction


class TransactionSerializer(serializers.ModelSerializer):
    """Read-only serializer for ledger entries."""

    user_id = serializers.CharField(source="account.user_id", read_only=True)
    unit = serializers.CharField(source="account.unit", read_only=True)

    class Meta:
        model = Transaction
        fields = (
            "id",
            "user_id",
            "unit",
            "kind",
            "amount",
            "balance_before",
            "balance_after",
            "status",
            "reference_id",
            "created_at",
        )
        read_only_fields = fields
