from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.response import Response

from betting.exceptions import (
    AlreadyJoined,
    GameFull,
    GameNotSettled,
    InsufficientFunds,
    InvalidSignature,
    StorageUnavailable,
)

ERROR_STATUS = {
    InsufficientFunds: status.HTTP_400_BAD_REQUEST,
    GameFull: status.HTTP_409_CONFLICT,
    AlreadyJoined: status.HTTP_409_CONFLICT,
    GameNotSettled: status.HTTP_409_CONFLICT,
    InvalidSignature: status.HTTP_403_FORBIDDEN,
    StorageUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
}


class MissingIdentity(APIException):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Caller identity is required."
    default_code = "not_authenticated"


class CallerMixin:
    """Rejects requests that arrive without a caller account id."""

    def initial(self, request, *args, **kwargs):
        super().initial(request, *args, **kwargs)
        if not getattr(request, "account_id", None):
            raise MissingIdentity()


def error_response(exc):
    """Terse client-facing body for a domain error."""
    return Response(
        {"error": str(exc), "code": exc.code},
        status=ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST),
    )
