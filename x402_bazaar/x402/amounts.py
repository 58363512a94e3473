# x402_bazaar/x402/amounts.py
"""
USDC amount handling for x402 payments.

Amounts travel through the client as decimal USDC values (e.g. "0.005").
On-chain transfers use the token's base units:
1. Parse the decimal value from a challenge, a flag or a setting
2. Reject values that cannot be represented with 6 decimals
3. Convert to base units for the ERC-20 transfer
"""
import logging
from decimal import Decimal, InvalidOperation
from typing import Union

logger = logging.getLogger(__name__)

# Conversion constants
USDC_DECIMALS = 6
UNITS_PER_USDC = 10 ** USDC_DECIMALS  # 1 USDC = 10^6 base units
USDC_QUANTUM = Decimal(1).scaleb(-USDC_DECIMALS)

AmountLike = Union[str, int, float, Decimal]


def parse_usdc(value: AmountLike) -> Decimal:
    """
    Parse a USDC amount into a Decimal.

    Floats are converted through their string form so that 0.01 stays 0.01.

    Args:
        value: Amount as string, int, float or Decimal

    Returns:
        The amount as a Decimal

    Raises:
        ValueError: If the value is not a finite, non-negative number with at
            most 6 decimal places
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid USDC amount: {value!r}")

    try:
        amount = Decimal(str(value).strip()) if not isinstance(value, Decimal) else value
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Invalid USDC amount: {value!r}") from e

    if not amount.is_finite():
        raise ValueError(f"USDC amount must be finite: {value!r}")
    if amount < 0:
        raise ValueError(f"USDC amount must not be negative: {value!r}")
    if amount != amount.quantize(USDC_QUANTUM):
        raise ValueError(f"USDC amount has more than {USDC_DECIMALS} decimals: {value!r}")

    return amount


def usdc_to_units(amount: Decimal) -> int:
    """Convert a USDC amount to base units."""
    return int(amount * UNITS_PER_USDC)


def units_to_usdc(units: int) -> Decimal:
    """Convert base units to a USDC amount."""
    return (Decimal(units) / UNITS_PER_USDC).quantize(USDC_QUANTUM)


def format_usdc(amount: Decimal, places: int = USDC_DECIMALS) -> str:
    """Format an amount for display, e.g. 0.005000 USDC."""
    return f"{amount:.{places}f} USDC"
