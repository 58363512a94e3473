# tests/test_amounts.py
"""
Unit tests for USDC amount parsing and conversion.
"""
import pytest
from decimal import Decimal

from x402_bazaar.x402.amounts import (
    UNITS_PER_USDC,
    format_usdc,
    parse_usdc,
    units_to_usdc,
    usdc_to_units,
)


class TestParseUsdc:
    """Test parse_usdc."""

    def test_parse_string(self):
        """Decimal strings are parsed exactly."""
        assert parse_usdc("0.01") == Decimal("0.01")

    def test_parse_float_keeps_decimal_value(self):
        """Floats go through their string form."""
        assert parse_usdc(0.01) == Decimal("0.01")

    def test_parse_int(self):
        """Integers are whole USDC."""
        assert parse_usdc(2) == Decimal("2")

    def test_parse_strips_whitespace(self):
        """Surrounding whitespace is ignored."""
        assert parse_usdc(" 0.5 ") == Decimal("0.5")

    def test_zero_allowed(self):
        """Zero is a valid amount."""
        assert parse_usdc("0") == Decimal("0")

    @pytest.mark.parametrize("value", ["-0.01", "NaN", "Infinity", "abc", "", "0.0000001", True])
    def test_invalid_values_rejected(self, value):
        """Negative, non-finite, non-numeric and over-precise values raise ValueError."""
        with pytest.raises(ValueError):
            parse_usdc(value)


class TestUnitConversion:
    """Test base unit conversion."""

    def test_one_usdc(self):
        """1 USDC is 10^6 units."""
        assert usdc_to_units(Decimal("1")) == UNITS_PER_USDC

    def test_smallest_unit(self):
        """0.000001 USDC is one unit."""
        assert usdc_to_units(Decimal("0.000001")) == 1

    def test_units_to_usdc(self):
        """Units convert back to a 6-decimal Decimal."""
        assert units_to_usdc(5_000) == Decimal("0.005000")

    def test_format(self):
        """Amounts format with 6 decimals by default."""
        assert format_usdc(Decimal("0.01")) == "0.010000 USDC"
