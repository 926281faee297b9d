import logging

from rest_framework.generics import ListAPIView, RetrieveAPIView

from betting.models import Transaction
from betting.serializers import TransactionSerializer
from betting.views.base import CallerMixin

logger = logging.getLogger(__name__)


class TransactionListView(CallerMixin, ListAPIView):
    """
    GET /accounts/me/transactions/ - The caller's ledger, newest first.

    Query params:
        - kind: DEPOSIT, WITHDRAWAL, GAME_ENTRY, GAME_WIN, GAME_LOSS, REFUND
        - status: PENDING, COMPLETED, FAILED
        - unit: CURRENCY or COIN
    """

    serializer_class = TransactionSerializer

    def get_queryset(self):
        queryset = Transaction.objects.filter(
            account__user_id=self.request.account_id
        ).select_related("account")

        kind = self.request.query_params.get("kind")
        if kind:
            queryset = queryset.filter(kind=kind.upper())

        tx_status = self.request.query_params.get("status")
        if tx_status:
            queryset = queryset.filter(status=tx_status.upper())

        unit = self.request.query_params.get("unit")
        if unit:
            queryset = queryset.filter(account__unit=unit.upper())

        return queryset


class TransactionDetailView(CallerMixin, RetrieveAPIView):
    """GET /accounts/me/transactions/<id>/ - One of the caller's entries."""

    serializer_class = TransactionSerializer
    lookup_field = "id"

    def get_queryset(self):
        return Transaction.objects.filter(
            account__user_id=self.request.account_id
        ).select_related("account")
