from rest_framework import serializers

from betting.models import Game, Participant


class ParticipantSerializer(serializers.ModelSerializer):
    user_id = serializers.CharField(source="account.user_id", read_only=True)

    class Meta:
        model = Participant
        fields = ("user_id", "amount_paid", "amount_won", "is_winner", "created_at")
        read_only_fields = fields


class GameSerializer(serializers.ModelSerializer):
    """Lobby listing: no participant detail."""

    winner_id = serializers.CharField(
        source="winner.user_id", read_only=True, default=None
    )

    class Meta:
        model = Game
        fields = (
            "id",
            "stake",
            "capacity",
            "current_players",
            "status",
            "win_multiplier",
            "loss_refund_multiplier",
            "winner_id",
            "created_at",
            "completed_at",
        )
        read_only_fields = fields


class GameDetailSerializer(GameSerializer):
    participants = ParticipantSerializer(many=True, read_only=True)

    class Meta(GameSerializer.Meta):
        fields = GameSerializer.Meta.fields + ("participants",)
        read_only_fields = fields


class JoinGameSerializer(serializers.Serializer):
    """Validates lobby join requests."""

    stake = serializers.IntegerField(min_value=1)


class SettlementClaimSerializer(serializers.Serializer):
    game = GameDetailSerializer(read_only=True)
    amount_paid = serializers.IntegerField(source="participant.amount_paid")
    amount_won = serializers.IntegerField(source="participant.amount_won")
    is_winner = serializers.BooleanField(source="participant.is_winner")
