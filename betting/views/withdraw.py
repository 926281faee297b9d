import logging
import uuid

from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from betting.exceptions import BettingError
from betting.serializers import WithdrawalSerializer, WithdrawSerializer
from betting.services import WithdrawalService
from betting.views.base import CallerMixin, error_response

logger = logging.getLogger(__name__)


class WithdrawView(CallerMixin, APIView):
    """
    POST /accounts/me/withdraw/ - Request a bank payout.

    Request body: {"amount": <int>, "scheduled_for": "<ISO datetime>" (optional)}
    Optional Idempotency-Key header (UUID) makes retries return the same request.
    The balance is debited when the payout executes, not here.
    """

    def post(self, request, *args, **kwargs):
        serializer = WithdrawSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        idempotency_key = request.META.get("HTTP_IDEMPOTENCY_KEY")
        if idempotency_key:
            try:
                idempotency_key = str(uuid.UUID(idempotency_key))
            except ValueError:
                return Response(
                    {"error": "Idempotency-Key must be a UUID."},
                    status=status.HTTP_400_BAD_REQUEST,
                )

        try:
            withdrawal = WithdrawalService.schedule(
                user_id=request.account_id,
                amount=serializer.validated_data["amount"],
                scheduled_for=serializer.validated_data.get("scheduled_for"),
                idempotency_key=idempotency_key,
            )
        except BettingError as exc:
            return error_response(exc)
        except ValueError as exc:
            return Response({"error": str(exc)}, status=status.HTTP_400_BAD_REQUEST)

        return Response(
            WithdrawalSerializer(withdrawal).data,
            status=status.HTTP_201_CREATED,
        )
