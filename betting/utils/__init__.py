from betting.utils.bank import PayoutResult, request_bank_payout
from betting.utils.signatures import is_valid_signature, sign_payload

__all__ = [
    "PayoutResult",
    "request_bank_payout",
    "is_valid_signature",
    "sign_payload",
]
