# x402_bazaar/x402/errors.py
"""
Exception taxonomy and failure kinds for the x402 payment flow.

Exceptions are raised by the challenge parser and the payment gateway.
The retry engine converts them into a PaymentFailure so callers receive a
structured result instead of an exception.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional


class X402BazaarError(Exception):
    """Base class for all client errors."""


class MalformedChallengeError(X402BazaarError):
    """A 402 response body does not describe both an amount and a recipient."""


class InvalidKeyError(X402BazaarError):
    """A funding key is not 0x followed by 64 hex characters."""


class PaymentError(X402BazaarError):
    """The on-chain transfer could not be completed.

    `transaction_hash` is set when the transfer was submitted before failing.
    """

    def __init__(self, message: str = "", transaction_hash: Optional[str] = None):
        self.transaction_hash = transaction_hash
        super().__init__(message)


class InsufficientFundsError(PaymentError):
    """The funding address holds less USDC than the payment requires."""

    def __init__(self, available: Decimal, required: Decimal):
        self.available = available
        self.required = required
        super().__init__(
            f"Insufficient USDC balance: {available} USDC (need {required} USDC)"
        )


class NetworkError(X402BazaarError):
    """Connection failure while talking to the marketplace or the RPC node.

    `transaction_hash` is set when a transfer was already submitted; the
    payment may still confirm on chain.
    """

    def __init__(self, message: str = "", transaction_hash: Optional[str] = None):
        self.transaction_hash = transaction_hash
        super().__init__(message)


class NetworkTimeout(NetworkError):
    """A network operation exceeded its timeout."""


class FailureKind(Enum):
    """Terminal failure kinds of one payment cycle."""
    MALFORMED_CHALLENGE = "malformed_challenge"
    NO_FUNDING_CONFIGURED = "no_funding_configured"
    BUDGET_EXCEEDED = "budget_exceeded"
    INVALID_KEY = "invalid_key"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    PAYMENT_FAILED = "payment_failed"
    PAYMENT_NOT_ACCEPTED = "payment_not_accepted"


@dataclass
class PaymentFailure:
    """
    Structured failure returned by the retry engine.

    `details` carries kind-specific values:
    - BUDGET_EXCEEDED: attempted, remaining, limit
    - INSUFFICIENT_FUNDS: available, required
    - TIMEOUT, NETWORK_ERROR, PAYMENT_FAILED: transaction_hash when the
      transfer was submitted before the error
    """
    kind: FailureKind
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "details": {k: _jsonable(v) for k, v in self.details.items()},
        }


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    return value


def failure_from_exception(exc: Exception, default: Optional[FailureKind] = None) -> PaymentFailure:
    """
    Map a gateway or transport exception to a PaymentFailure.

    Args:
        exc: The raised exception
        default: Kind used for exceptions outside the taxonomy
            (PAYMENT_FAILED when omitted)

    Returns:
        PaymentFailure describing the exception
    """
    if isinstance(exc, InsufficientFundsError):
        return PaymentFailure(
            FailureKind.INSUFFICIENT_FUNDS,
            str(exc),
            {"available": exc.available, "required": exc.required},
        )
    if isinstance(exc, InvalidKeyError):
        return PaymentFailure(FailureKind.INVALID_KEY, str(exc))
    if isinstance(exc, MalformedChallengeError):
        return PaymentFailure(FailureKind.MALFORMED_CHALLENGE, str(exc))

    if isinstance(exc, NetworkTimeout):
        failure = PaymentFailure(FailureKind.TIMEOUT, str(exc))
    elif isinstance(exc, NetworkError):
        failure = PaymentFailure(FailureKind.NETWORK_ERROR, str(exc))
    else:
        failure = PaymentFailure(default or FailureKind.PAYMENT_FAILED, str(exc) or exc.__class__.__name__)

    tx_hash = getattr(exc, "transaction_hash", None)
    if tx_hash:
        failure.details["transaction_hash"] = tx_hash
    return failure
