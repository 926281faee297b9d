import logging
from typing import NamedTuple

import requests
from django.conf import settings

logger = logging.getLogger(__name__)


class PayoutResult(NamedTuple):
    success: bool
    response: dict


def request_bank_payout(user_id: str, amount: int) -> PayoutResult:
    """
    Ask the bank payout provider to send `amount` to the user's bank account.

    The provider answers with a JSON body whose "status" is 200 on success.
    Network failures and timeouts are reported as unsuccessful results rather
    than raised, so the caller can record them on the withdrawal and retry.
    """
    base_url = getattr(settings, "THIRD_PARTY_BASE_URL", "http://localhost:8010")
    timeout = getattr(settings, "THIRD_PARTY_TIMEOUT", 10)

    try:
        response = requests.post(
            f"{base_url}/",
            json={"account_id": user_id, "amount": amount},
            timeout=timeout,
        )
        response_data = response.json()
    except requests.exceptions.Timeout as exc:
        error, detail = "timeout", str(exc)
    except requests.exceptions.ConnectionError as exc:
        error, detail = "connection_error", str(exc)
    except (requests.exceptions.RequestException, ValueError) as exc:
        error, detail = "request_error", str(exc)
    else:
        if response_data.get("status") == 200:
            logger.info("Bank payout accepted: user=%s amount=%d", user_id, amount)
            return PayoutResult(True, response_data)

        logger.warning(
            "Bank payout refused: user=%s amount=%d response=%s",
            user_id,
            amount,
            response_data,
        )
        return PayoutResult(False, response_data)

    logger.error(
        "Bank payout %s: user=%s amount=%d error=%s", error, user_id, amount, detail
    )
    return PayoutResult(False, {"error": error, "detail": detail})
