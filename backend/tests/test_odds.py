from __future__ import annotations

from decimal import Decimal

import pytest

from app.domain import ODDS_SCALE, apply_rate, compute_payout, nominal_multiplier, scale_multiplier


def test_scale_multiplier_converts_nominal_values():
    """Nominal multipliers become integers at the fixed odds scale."""
    assert ODDS_SCALE == 10000
    assert scale_multiplier("90") == 900_000
    assert scale_multiplier("1.9") == 19_000
    assert nominal_multiplier(19_000) == Decimal("1.9")


@pytest.mark.parametrize("value", ["0", "-2", "1.23456", "abc"])
def test_scale_multiplier_rejects_unusable_values(value):
    """Zero, negative, non-numeric, and over-precise multipliers are refused."""
    with pytest.raises(ValueError):
        scale_multiplier(value)


def test_compute_payout_floors_the_exact_product():
    """Payout is the floor of stake times the nominal multiplier."""
    assert compute_payout(100, scale_multiplier("2")) == 200
    assert compute_payout(200, scale_multiplier("1.5")) == 300
    assert compute_payout(7, scale_multiplier("1.9")) == 13
    assert compute_payout(0, scale_multiplier("90")) == 0


def test_payout_does_not_depend_on_scale():
    """The same nominal multiplier yields the same payout at a different scale."""
    stake = 333
    at_ten_thousand = compute_payout(stake, 19_000)
    at_hundred = stake * 190 // 100
    assert at_ten_thousand == at_hundred


def test_apply_rate_rounds_down_and_bounds_rates():
    """Basis-point rates are floored and must sit between 0 and 10000."""
    assert apply_rate(1000, 1000) == 100
    assert apply_rate(999, 1000) == 99
    assert apply_rate(1000, 0) == 0
    with pytest.raises(ValueError):
        apply_rate(1000, 10001)
