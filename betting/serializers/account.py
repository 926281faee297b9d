from rest_framework import serializers

from betting.models import Account


class AccountSerializer(serializers.ModelSerializer):
    class Meta:
        model = Account
        fields = ("user_id", "unit", "balance", "created_at", "updated_at")
        read_only_fields = fields
