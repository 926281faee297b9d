import json
import logging

from django.conf import settings
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from betting.exceptions import DuplicateReference, InvalidSignature
from betting.models import Account
from betting.serializers import PaymentConfirmationSerializer
from betting.services import LedgerService
from betting.utils import is_valid_signature
from betting.views.base import error_response

logger = logging.getLogger(__name__)


class PaymentWebhookView(APIView):
    """
    POST /webhooks/payments/ - Verified payment confirmations from the gateway.

    The X-Signature header must be the hex HMAC-SHA256 of the raw body under
    PAYMENT_WEBHOOK_SECRET. Replayed confirmations answer 200 without
    crediting again.
    """

    def post(self, request, *args, **kwargs):
        raw_body = request.body
        signature = request.META.get("HTTP_X_SIGNATURE", "")
        if not is_valid_signature(raw_body, signature, settings.PAYMENT_WEBHOOK_SECRET):
            logger.warning("Payment webhook rejected: invalid signature")
            return error_response(InvalidSignature())

        try:
            payload = json.loads(raw_body or b"{}")
        except ValueError:
            return Response(
                {"error": "Body must be JSON."}, status=status.HTTP_400_BAD_REQUEST
            )

        serializer = PaymentConfirmationSerializer(data=payload)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        amount = data["amount"]
        if data["unit"] == Account.Unit.COIN:
            amount = amount // getattr(settings, "COIN_PRICE", 10)
            if amount <= 0:
                return Response(
                    {"error": "Payment is too small to buy a coin."},
                    status=status.HTTP_400_BAD_REQUEST,
                )

        try:
            tx = LedgerService.record_external_deposit(
                data["account_id"], amount, data["reference"], unit=data["unit"]
            )
        except DuplicateReference as exc:
            return Response(
                {
                    "status": "already_processed",
                    "transaction_id": exc.transaction.id,
                }
            )

        return Response(
            {
                "status": "credited",
                "transaction_id": tx.id,
                "balance": tx.balance_after,
            }
        )
