# x402_bazaar/x402/engine.py
"""
HTTP 402 payment retry engine.

Flow of one execute() call:
1. Send the request
2. Anything other than 402 is returned unchanged
3. Parse the 402 body into a PaymentChallenge
4. Resolve the funding key
5. Reserve the amount in the session budget (if one is attached)
6. Pay through the payment gateway
7. Commit the payment to the budget
8. Re-send the request once with the X-Payment-TxHash header

Every failure ends the cycle and is returned as a PaymentFailure inside the
CallResult. A transfer that was submitted but not confirmed stays charged to
the budget and its hash is reported in the failure details. The original request is never retried on transport errors, and
a second 402 is never paid.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Optional

import requests

from x402_bazaar.core.config import settings
from x402_bazaar.models.payment import PaymentChallenge, PaymentProof
from x402_bazaar.services.usdc import PaymentGateway
from x402_bazaar.x402.budget import BudgetExceededError, SessionBudget
from x402_bazaar.x402.challenge import parse_challenge
from x402_bazaar.x402.errors import (
    FailureKind,
    MalformedChallengeError,
    NetworkError,
    PaymentFailure,
    failure_from_exception,
)
from x402_bazaar.x402.keys import FundingKeyResolver, KeyStatus

logger = logging.getLogger(__name__)

PAYMENT_PROOF_HEADER = "X-Payment-TxHash"
PAYMENT_REQUIRED_STATUS = 402


@dataclass
class PaidRequest:
    """An HTTP request that may need payment. Never mutated by the engine."""
    url: str
    method: str = "GET"
    params: Optional[Dict[str, str]] = None
    headers: Dict[str, str] = field(default_factory=dict)
    json: Optional[Any] = None
    endpoint: Optional[str] = None  # label recorded in the budget ledger


@dataclass
class CallResult:
    """Terminal outcome of one execute() call."""
    response: Optional[requests.Response] = None
    failure: Optional[PaymentFailure] = None
    challenge: Optional[PaymentChallenge] = None
    proof: Optional[PaymentProof] = None

    @property
    def ok(self) -> bool:
        return self.failure is None and self.response is not None and self.response.ok

    @property
    def paid(self) -> bool:
        return self.proof is not None


class PaymentRetryEngine:
    """
    Executes requests with automatic x402 payment.

    Args:
        gateway: Payment gateway performing the on-chain transfer
        resolver: Funding key resolver (a default FundingKeyResolver if omitted)
        session: requests.Session used for HTTP calls
        budget: SessionBudget guarding cumulative spend, or None for no ceiling
        explicit_key: Key supplied on the command line, highest precedence
        timeout: HTTP timeout in seconds (settings.CALL_TIMEOUT_SECONDS by default)
    """

    def __init__(
        self,
        gateway: PaymentGateway,
        resolver: Optional[FundingKeyResolver] = None,
        session: Optional[requests.Session] = None,
        budget: Optional[SessionBudget] = None,
        explicit_key: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.gateway = gateway
        self.resolver = resolver or FundingKeyResolver()
        self.session = session or requests.Session()
        self.budget = budget
        self.explicit_key = explicit_key
        self.timeout = timeout or settings.CALL_TIMEOUT_SECONDS

    def _send(self, request: PaidRequest, proof: Optional[PaymentProof] = None) -> requests.Response:
        headers = dict(request.headers)
        if proof is not None:
            headers[PAYMENT_PROOF_HEADER] = proof.transaction_hash
        return self.session.request(
            request.method,
            request.url,
            params=request.params,
            headers=headers,
            json=request.json,
            timeout=self.timeout,
        )

    def _transport_failure(self, e: requests.exceptions.RequestException, stage: str) -> PaymentFailure:
        if isinstance(e, requests.exceptions.Timeout):
            logger.error(f"{stage} timed out after {self.timeout}s")
            return PaymentFailure(FailureKind.TIMEOUT, f"Request timed out after {self.timeout}s")
        logger.error(f"{stage} failed: {e}")
        return PaymentFailure(FailureKind.NETWORK_ERROR, f"Request failed: {e}")

    def execute(self, request: PaidRequest, explicit_key: Optional[str] = None) -> CallResult:
        """
        Run one request/pay/retry cycle.

        Args:
            request: The request to send
            explicit_key: Per-call key overriding the engine's explicit key

        Returns:
            CallResult with the final response or a PaymentFailure
        """
        try:
            response = self._send(request)
        except requests.exceptions.RequestException as e:
            return CallResult(failure=self._transport_failure(e, f"{request.method} {request.url}"))

        if response.status_code != PAYMENT_REQUIRED_STATUS:
            return CallResult(response=response)

        logger.info(f"Payment required for {request.method} {request.url}")

        try:
            challenge = parse_challenge(response.content)
        except MalformedChallengeError as e:
            logger.error(f"Malformed payment challenge: {e}")
            return CallResult(
                response=response,
                failure=PaymentFailure(FailureKind.MALFORMED_CHALLENGE, str(e)),
            )

        resolution = self.resolver.resolve(explicit_key or self.explicit_key)
        if resolution.status is KeyStatus.INVALID:
            return CallResult(
                response=response,
                challenge=challenge,
                failure=PaymentFailure(
                    FailureKind.INVALID_KEY,
                    f"Funding key from {resolution.source.value} is malformed "
                    f"(expected 0x followed by 64 hex characters)",
                    {"source": resolution.source.value},
                ),
            )
        if resolution.status is KeyStatus.ABSENT:
            return CallResult(
                response=response,
                challenge=challenge,
                failure=PaymentFailure(
                    FailureKind.NO_FUNDING_CONFIGURED,
                    f"Payment of {challenge.amount} USDC required but no funding key is configured",
                    {"amount": challenge.amount, "recipient": challenge.recipient},
                ),
            )

        reserved = False
        if self.budget is not None:
            try:
                self.budget.reserve(challenge.amount)
                reserved = True
            except BudgetExceededError as e:
                return CallResult(
                    response=response,
                    challenge=challenge,
                    failure=PaymentFailure(
                        FailureKind.BUDGET_EXCEEDED,
                        str(e),
                        {"attempted": e.attempted, "remaining": e.remaining, "limit": e.limit},
                    ),
                )

        try:
            proof = self.gateway.pay(resolution.key, challenge.recipient, challenge.amount)
        except Exception as e:
            # Any gateway error ends the cycle
            failure = failure_from_exception(e)
            pending_hash = getattr(e, "transaction_hash", None) if isinstance(e, NetworkError) else None
            if reserved:
                if pending_hash:
                    # Submitted but unconfirmed: the funds may already be gone
                    pending = PaymentProof(
                        transaction_hash=pending_hash,
                        amount=challenge.amount,
                        recipient=challenge.recipient,
                    )
                    self.budget.record(challenge.amount, pending, endpoint=request.endpoint or request.url)
                else:
                    self.budget.release(challenge.amount)
            if pending_hash:
                logger.error(
                    f"Payment of {challenge.amount} USDC submitted as {pending_hash} "
                    f"but not confirmed ({failure.kind.value}): {e}"
                )
            else:
                logger.error(f"Payment of {challenge.amount} USDC failed ({failure.kind.value}): {e}")
            return CallResult(response=response, challenge=challenge, failure=failure)

        if reserved:
            self.budget.record(challenge.amount, proof, endpoint=request.endpoint or request.url)

        logger.info(f"Paid {challenge.amount} USDC ({proof.transaction_hash}); retrying request")

        try:
            retried = self._send(request, proof=proof)
        except requests.exceptions.RequestException as e:
            return CallResult(
                challenge=challenge,
                proof=proof,
                failure=self._transport_failure(e, "Paid retry"),
            )

        if retried.status_code == PAYMENT_REQUIRED_STATUS:
            logger.error(f"Server rejected payment proof {proof.transaction_hash}")
            return CallResult(
                response=retried,
                challenge=challenge,
                proof=proof,
                failure=PaymentFailure(
                    FailureKind.PAYMENT_NOT_ACCEPTED,
                    f"Payment {proof.transaction_hash} was not accepted by the server",
                    {"transaction_hash": proof.transaction_hash},
                ),
            )

        return CallResult(response=retried, challenge=challenge, proof=proof)
