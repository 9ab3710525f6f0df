"""Pure unit-conversion helpers for token amounts, USD values and basis points.

Token amounts stay integers end to end; only USD estimates are floats, and
they are derived from the exact integer via Decimal so large amounts do not
lose precision before conversion.
"""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

BPS_PER_UNIT = 10_000


def safe_div(numerator: float | int, denominator: float | int) -> float:
    if denominator in (0, 0.0):
        return 0.0
    return float(numerator) / float(denominator)


def to_usd(amount: int, decimals: int, price_usd: float) -> float:
    """Convert an integer on-chain amount to a USD estimate."""
    scaled = Decimal(amount) / (Decimal(10) ** decimals)
    return float(scaled * Decimal(str(price_usd)))


def fee_bps(total_fee_usd: float, amount_usd: float) -> int:
    """Fees as basis points of the payout value (0 when the value is unknown)."""
    return int(round(safe_div(total_fee_usd, amount_usd) * BPS_PER_UNIT))


def slippage_bps(from_amount: int, estimated_output: int) -> int:
    """Shortfall of the estimated output versus the input, in basis points."""
    if from_amount <= 0:
        return 0
    shortfall = Decimal(from_amount - estimated_output) / Decimal(from_amount)
    return int((shortfall * BPS_PER_UNIT).to_integral_value(rounding=ROUND_HALF_UP))


__all__ = ["BPS_PER_UNIT", "safe_div", "to_usd", "fee_bps", "slippage_bps"]
