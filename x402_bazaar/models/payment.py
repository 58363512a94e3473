# x402_bazaar/models/payment.py
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from x402_bazaar.x402.amounts import parse_usdc

ADDRESS_PATTERN = r"^0x[a-fA-F0-9]{40}$"
TX_HASH_PATTERN = r"^0x[a-fA-F0-9]+$"


class PaymentChallenge(BaseModel):
    """
    Canonical payment request parsed from an HTTP 402 response body.
    Lives for a single retry cycle.
    """
    model_config = ConfigDict(frozen=True)

    amount: Decimal = Field(..., description="Amount due in USDC.")
    recipient: str = Field(..., pattern=ADDRESS_PATTERN, description="Address receiving the payment.")
    message: Optional[str] = Field(None, description="Human readable message from the server.")
    network: Optional[str] = Field(None, description="Network hint from the server, if any.")

    @field_validator("amount", mode="before")
    @classmethod
    def validate_amount(cls, v):
        amount = parse_usdc(v)
        if amount <= 0:
            raise ValueError("amount must be greater than zero")
        return amount


class PaymentProof(BaseModel):
    """
    Evidence that a challenge was paid, attached to the retried request.
    """
    model_config = ConfigDict(frozen=True)

    transaction_hash: str = Field(..., pattern=TX_HASH_PATTERN)
    amount: Decimal
    recipient: str = Field(..., pattern=ADDRESS_PATTERN)
    explorer_url: Optional[str] = Field(None, description="Block explorer link, informational only.")

    def to_dict(self) -> dict:
        return {
            "transaction_hash": self.transaction_hash,
            "amount": str(self.amount),
            "recipient": self.recipient,
            "explorer_url": self.explorer_url,
        }


class LedgerEntry(BaseModel):
    """One completed payment recorded in a session budget."""
    model_config = ConfigDict(frozen=True)

    amount: Decimal
    transaction_hash: str
    endpoint: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
