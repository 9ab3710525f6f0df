import pytest

from payout_orchestrator.utils.units import fee_bps, safe_div, slippage_bps, to_usd


def test_to_usd_uses_decimals_and_price():
    assert to_usd(1_500_000, 6, 1.0) == pytest.approx(1.5)
    assert to_usd(2 * 10 ** 18, 18, 3000.0) == pytest.approx(6000.0)


def test_fee_bps_is_share_of_amount():
    # $1 of fees on $100 is 1%
    assert fee_bps(1.0, 100.0) == 100
    assert fee_bps(0.75, 50.0) == 150
    assert fee_bps(1.0, 0.0) == 0


def test_slippage_bps():
    assert slippage_bps(1_000_000, 999_000) == 10
    assert slippage_bps(1_000_000, 1_000_000) == 0
    assert slippage_bps(0, 10) == 0
    # output above input is negative slippage
    assert slippage_bps(1_000_000, 1_001_000) == -10


def test_safe_div():
    assert safe_div(1, 0) == 0.0
    assert safe_div(1, 4) == 0.25
