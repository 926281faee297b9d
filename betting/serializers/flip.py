from rest_framework import serializers

from betting.models import FlipRound


class FlipRequestSerializer(serializers.Serializer):
    """Validates single-player flip requests; the service checks the limits."""

    choice = serializers.CharField(max_length=10)
    bet = serializers.IntegerField(min_value=1)
    multiplier = serializers.DecimalField(
        max_digits=6, decimal_places=3, required=False, allow_null=True
    )


class FlipRoundSerializer(serializers.ModelSerializer):
    class Meta:
        model = FlipRound
        fields = (
            "id",
            "choice",
            "result",
            "is_winner",
            "bet",
            "payout",
            "multiplier",
            "created_at",
        )
        read_only_fields = fields
