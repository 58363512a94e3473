# x402_bazaar/x402/budget.py
"""
Session spending ceiling for the long-running MCP server.

A SessionBudget is owned by one PaymentRetryEngine for the lifetime of the
process. Nothing is persisted; a restart starts from zero.

Payments go through a reservation so that concurrent payment cycles cannot
both pass the affordability check against the same `spent` value:
1. reserve(amount) - atomic check against spent + outstanding reservations
2. record(amount, proof) after the transfer succeeded, or
   release(amount) when it failed
"""
import logging
import threading
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from x402_bazaar.models.payment import LedgerEntry, PaymentProof
from x402_bazaar.x402.amounts import parse_usdc

logger = logging.getLogger(__name__)


class BudgetExceededError(Exception):
    """Raised by reserve() when the amount does not fit in the remaining budget."""

    def __init__(self, attempted: Decimal, remaining: Decimal, limit: Decimal):
        self.attempted = attempted
        self.remaining = remaining
        self.limit = limit
        super().__init__(
            f"Budget limit reached: payment of {attempted} USDC exceeds remaining "
            f"{remaining} USDC (limit {limit} USDC)"
        )


def _check_amount(amount: Union[Decimal, str, int, float]) -> Decimal:
    # Amounts come from validated challenges; anything else is a programming error
    try:
        return parse_usdc(amount)
    except ValueError as e:
        raise ValueError(f"Invalid budget amount {amount!r}: {e}") from e


class SessionBudget:
    """
    Tracks cumulative spend against a fixed limit. Thread-safe.

    Invariant: spent + reserved never exceeds limit, and spent only grows.
    """

    def __init__(self, limit: Union[Decimal, str, int, float]):
        limit = _check_amount(limit)
        if limit <= 0:
            raise ValueError("Budget limit must be greater than zero")
        self._limit = limit
        self._spent = Decimal("0")
        self._reserved = Decimal("0")
        self._ledger: List[LedgerEntry] = []
        self._lock = threading.Lock()

    @property
    def limit(self) -> Decimal:
        return self._limit

    @property
    def spent(self) -> Decimal:
        with self._lock:
            return self._spent

    @property
    def reserved(self) -> Decimal:
        with self._lock:
            return self._reserved

    @property
    def remaining(self) -> Decimal:
        """Amount still available, excluding in-flight reservations."""
        with self._lock:
            return self._limit - self._spent - self._reserved

    @property
    def ledger(self) -> List[LedgerEntry]:
        with self._lock:
            return list(self._ledger)

    def can_afford(self, amount) -> bool:
        amount = _check_amount(amount)
        with self._lock:
            return self._spent + self._reserved + amount <= self._limit

    def reserve(self, amount) -> Decimal:
        """
        Atomically set aside `amount` for a pending payment.

        Args:
            amount: Challenge amount in USDC (must be > 0)

        Returns:
            The reserved amount as Decimal

        Raises:
            BudgetExceededError: If the amount does not fit
            ValueError: If the amount is not a positive finite USDC value
        """
        amount = _check_amount(amount)
        if amount <= 0:
            raise ValueError("Reserved amount must be greater than zero")

        with self._lock:
            remaining = self._limit - self._spent - self._reserved
            if amount > remaining:
                logger.warning(
                    f"Budget refusal: {amount} USDC requested, "
                    f"{remaining} USDC remaining of {self._limit} USDC"
                )
                raise BudgetExceededError(amount, remaining, self._limit)
            self._reserved += amount

        logger.debug(f"Reserved {amount} USDC")
        return amount

    def release(self, amount) -> None:
        """Return a reservation whose payment did not go through."""
        amount = _check_amount(amount)
        with self._lock:
            if amount > self._reserved:
                raise ValueError(f"Cannot release {amount} USDC, only {self._reserved} USDC reserved")
            self._reserved -= amount
        logger.debug(f"Released reservation of {amount} USDC")

    def record(
        self,
        amount,
        proof: PaymentProof,
        endpoint: Optional[str] = None,
        reserved: bool = True,
    ) -> LedgerEntry:
        """
        Commit a successful payment to the ledger.

        Args:
            amount: Amount paid in USDC
            proof: Proof returned by the payment gateway
            endpoint: Endpoint the payment was made for
            reserved: Whether the amount was reserved beforehand

        Returns:
            The appended LedgerEntry

        Raises:
            BudgetExceededError: If an unreserved amount does not fit
        """
        amount = _check_amount(amount)
        entry = LedgerEntry(amount=amount, transaction_hash=proof.transaction_hash, endpoint=endpoint)

        with self._lock:
            if reserved:
                if amount > self._reserved:
                    raise ValueError(f"Cannot commit {amount} USDC, only {self._reserved} USDC reserved")
                self._reserved -= amount
            else:
                remaining = self._limit - self._spent - self._reserved
                if amount > remaining:
                    raise BudgetExceededError(amount, remaining, self._limit)
            self._spent += amount
            self._ledger.append(entry)
            spent = self._spent

        logger.info(f"Recorded payment of {amount} USDC ({proof.transaction_hash}); session spent {spent} USDC")
        return entry

    def summary(self) -> Dict[str, Any]:
        """JSON-friendly snapshot of the budget."""
        with self._lock:
            return {
                "limit": str(self._limit),
                "spent": str(self._spent),
                "remaining": str(self._limit - self._spent - self._reserved),
                "reserved": str(self._reserved),
                "payments": len(self._ledger),
                "ledger": [
                    {
                        "amount": str(e.amount),
                        "transaction_hash": e.transaction_hash,
                        "endpoint": e.endpoint,
                        "timestamp": e.timestamp.isoformat(),
                    }
                    for e in self._ledger
                ],
            }
