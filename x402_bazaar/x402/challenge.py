# x402_bazaar/x402/challenge.py
"""
Tolerant parser for HTTP 402 response bodies.

Marketplace endpoints describe the required payment with different field
names. Accepted shapes:
- {"amount": "0.01", "recipient": "0x..."}
- {"price": 0.01, "paymentAddress": "0x..."}
- {"amount": ..., "payTo": "0x..."}
- any of the above nested under "payment_details" (or "paymentDetails")

A body that does not yield both an amount and a recipient is rejected.
"""
import json
import logging
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from x402_bazaar.models.payment import PaymentChallenge
from x402_bazaar.x402.errors import MalformedChallengeError

logger = logging.getLogger(__name__)

AMOUNT_FIELDS = ("amount", "price", "amountDue")
RECIPIENT_FIELDS = ("recipient", "paymentAddress", "payTo", "pay_to", "recipientAddress")
NESTED_FIELDS = ("payment_details", "paymentDetails")


def _first(data: Dict[str, Any], names) -> Optional[Any]:
    for name in names:
        value = data.get(name)
        if value is not None and value != "":
            return value
    return None


def parse_challenge(body: Union[str, bytes, Dict[str, Any]]) -> PaymentChallenge:
    """
    Parse a 402 response body into a PaymentChallenge.

    Top-level fields take precedence over the nested payment details object;
    the message and network hints may come from either level.

    Args:
        body: Raw response text/bytes or an already decoded JSON object

    Returns:
        The canonical PaymentChallenge

    Raises:
        MalformedChallengeError: If the body is not a JSON object or lacks a
            valid amount or recipient
    """
    if isinstance(body, (str, bytes)):
        try:
            data = json.loads(body)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MalformedChallengeError(f"402 body is not valid JSON: {e}") from e
    else:
        data = body

    if not isinstance(data, dict):
        raise MalformedChallengeError("402 body is not a JSON object")

    nested = {}
    for name in NESTED_FIELDS:
        if isinstance(data.get(name), dict):
            nested = data[name]
            break

    amount = _first(data, AMOUNT_FIELDS)
    if amount is None:
        amount = _first(nested, AMOUNT_FIELDS)
    recipient = _first(data, RECIPIENT_FIELDS)
    if recipient is None:
        recipient = _first(nested, RECIPIENT_FIELDS)

    if amount is None:
        raise MalformedChallengeError("402 body has no amount")
    if recipient is None:
        raise MalformedChallengeError("402 body has no recipient")

    message = _first(data, ("message", "error", "description")) or _first(nested, ("message", "description"))
    network = _first(data, ("network",)) or _first(nested, ("network",))

    try:
        challenge = PaymentChallenge(
            amount=amount,
            recipient=recipient,
            message=str(message) if message is not None else None,
            network=str(network) if network is not None else None,
        )
    except ValidationError as e:
        errors = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())
        raise MalformedChallengeError(f"Invalid 402 challenge: {errors}") from e

    logger.debug(f"Parsed payment challenge: {challenge.amount} USDC to {challenge.recipient}")
    return challenge
