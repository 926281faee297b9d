import logging
import time

logger = logging.getLogger(__name__)

ACCOUNT_HEADER = "HTTP_X_ACCOUNT_ID"
MAX_LOGGED_BODY = 512


class IdentityHeaderMiddleware:
    """
    Exposes the caller's verified account id as `request.account_id`.

    Authentication happens upstream; the identity layer forwards the stable
    account id in the X-Account-Id header and this service trusts it as is.
    Missing or blank headers leave `request.account_id` as None.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        account_id = request.META.get(ACCOUNT_HEADER, "").strip()
        request.account_id = account_id or None
        return self.get_response(request)


class RequestResponseLoggingMiddleware:
    """
    Logs every API call: method, path, caller, status and duration.

    JSON request bodies are logged truncated; multipart bodies are not.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        started = time.monotonic()
        request_body = self._describe_body(request)

        response = self.get_response(request)

        elapsed_ms = (time.monotonic() - started) * 1000
        logger.info(
            "API %s %s account=%s status=%s duration_ms=%.1f body=%s",
            request.method,
            request.get_full_path(),
            getattr(request, "account_id", None),
            response.status_code,
            elapsed_ms,
            request_body,
        )
        return response

    @staticmethod
    def _describe_body(request):
        if request.method not in ("POST", "PUT", "PATCH"):
            return ""
        if "multipart/form-data" in request.META.get("CONTENT_TYPE", ""):
            return "<multipart>"
        try:
            body = request.body.decode("utf-8")
        except UnicodeDecodeError:
            return "<binary>"
        if len(body) > MAX_LOGGED_BODY:
            return body[:MAX_LOGGED_BODY] + "..."
        return body
