import hashlib
import hmac


def sign_payload(raw_body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def is_valid_signature(raw_body: bytes, provided_sig: str, secret: str) -> bool:
    """Constant-time check of a hex HMAC-SHA256 signature over the raw body."""
    if not provided_sig or not secret:
        return False
    return hmac.compare_digest(sign_payload(raw_body, secret), provided_sig.strip())
