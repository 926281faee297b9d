import logging

from rest_framework.response import Response
from rest_framework.views import APIView

from betting.models import Account
from betting.serializers import AccountSerializer
from betting.views.base import CallerMixin

logger = logging.getLogger(__name__)


class AccountView(CallerMixin, APIView):
    """
    GET /accounts/me/ - The caller's balances in every unit.

    `balances` always lists every unit (0 for accounts not opened yet);
    `accounts` holds the account rows that exist.
    """

    def get(self, request, *args, **kwargs):
        accounts = Account.objects.filter(user_id=request.account_id).order_by("unit")
        balances = dict.fromkeys(Account.Unit.values, 0)
        for account in accounts:
            balances[account.unit] = account.balance

        return Response(
            {
                "user_id": request.account_id,
                "balances": balances,
                "accounts": AccountSerializer(accounts, many=True).data,
            }
        )
