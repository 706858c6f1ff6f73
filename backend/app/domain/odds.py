"""Fixed-point multiplier arithmetic.

Multipliers are stored as integers scaled by ``ODDS_SCALE``: ``900000`` is a
90x payout and ``19000`` is 1.9x. Payouts are the floor of the exact product,
so the result does not depend on the scale chosen as long as the nominal
multiplier is representable.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

ODDS_SCALE = 10000
BPS_SCALE = 10000


def scale_multiplier(value: Decimal | str | int) -> int:
    """Convert a nominal multiplier (``"1.9"``) into its scaled integer form."""

    try:
        nominal = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Multiplier {value!r} is not numeric") from exc
    if nominal <= 0:
        raise ValueError("Multiplier must be positive")
    scaled = nominal * ODDS_SCALE
    if scaled != scaled.to_integral_value():
        raise ValueError(f"Multiplier {value!r} is not representable at scale {ODDS_SCALE}")
    return int(scaled)


def nominal_multiplier(scaled: int) -> Decimal:
    return Decimal(scaled) / Decimal(ODDS_SCALE)


def compute_payout(stake: int, scaled_multiplier: int) -> int:
    if stake < 0:
        raise ValueError("Stake must not be negative")
    return stake * scaled_multiplier // ODDS_SCALE


def apply_rate(amount: int, rate_bps: int) -> int:
    """Portion of ``amount`` covered by a basis-point rate, rounded down."""

    if not 0 <= rate_bps <= BPS_SCALE:
        raise ValueError("Rate must be between 0 and 10000 basis points")
    return amount * rate_bps // BPS_SCALE


__all__ = [
    "BPS_SCALE",
    "ODDS_SCALE",
    "apply_rate",
    "compute_payout",
    "nominal_multiplier",
    "scale_multiplier",
]
