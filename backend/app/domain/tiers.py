"""Transfer rules between principal tiers.

Which side of a transfer is discounted, marked up, or moved one-for-one is a
pure function of the two tiers and the transfer kind.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .errors import TransferNotPermitted
from .models import PrincipalTier, TransferKind
from .odds import apply_rate


class TransferPolicy(str, Enum):
    FULL = "full"
    COMMISSION = "commission"
    DISCOUNT_BONUS = "discount_bonus"
    SELF_FUNDING = "self_funding"


_POLICIES: dict[tuple[PrincipalTier, PrincipalTier, TransferKind], TransferPolicy] = {
    (PrincipalTier.OPERATOR, PrincipalTier.REGIONAL_OPERATOR, TransferKind.DEPOSIT): TransferPolicy.COMMISSION,
    (PrincipalTier.REGIONAL_OPERATOR, PrincipalTier.OPERATOR, TransferKind.WITHDRAWAL): TransferPolicy.COMMISSION,
    (PrincipalTier.REGIONAL_OPERATOR, PrincipalTier.BETTOR, TransferKind.DEPOSIT): TransferPolicy.DISCOUNT_BONUS,
    (PrincipalTier.OPERATOR, PrincipalTier.BETTOR, TransferKind.DEPOSIT): TransferPolicy.FULL,
    (PrincipalTier.BETTOR, PrincipalTier.REGIONAL_OPERATOR, TransferKind.WITHDRAWAL): TransferPolicy.FULL,
    (PrincipalTier.BETTOR, PrincipalTier.OPERATOR, TransferKind.WITHDRAWAL): TransferPolicy.FULL,
    (PrincipalTier.OPERATOR, PrincipalTier.OPERATOR, TransferKind.SELF_FUNDING): TransferPolicy.SELF_FUNDING,
}


def transfer_policy(
    from_tier: PrincipalTier | str,
    to_tier: PrincipalTier | str,
    kind: TransferKind | str,
) -> TransferPolicy:
    try:
        key = (PrincipalTier(from_tier), PrincipalTier(to_tier), TransferKind(kind))
    except ValueError as exc:
        raise TransferNotPermitted(str(exc)) from exc
    policy = _POLICIES.get(key)
    if policy is None:
        raise TransferNotPermitted(
            f"A {key[2].value} from {key[0].value} to {key[1].value} is not a supported transfer"
        )
    return policy


@dataclass(frozen=True, slots=True)
class TransferAmounts:
    """Balance movements for one transfer, all in minor units."""

    debit: int
    credit: int
    bonus: int = 0
    commission: int = 0


def compute_transfer_amounts(
    policy: TransferPolicy,
    kind: TransferKind | str,
    amount: int,
    *,
    commission_bps: int = 0,
    discount_bps: int = 0,
) -> TransferAmounts:
    if amount <= 0:
        raise TransferNotPermitted("Transfer amount must be positive")

    if policy is TransferPolicy.COMMISSION:
        # The operator only moves its share of the nominal amount; the
        # remainder is the regional operator's margin.
        share = apply_rate(amount, commission_bps)
        margin = amount - share
        if TransferKind(kind) is TransferKind.WITHDRAWAL:
            return TransferAmounts(debit=amount, credit=share, commission=margin)
        return TransferAmounts(debit=share, credit=amount, commission=margin)

    if policy is TransferPolicy.DISCOUNT_BONUS:
        bonus = apply_rate(amount, discount_bps)
        return TransferAmounts(debit=amount + bonus, credit=amount + bonus, bonus=bonus)

    return TransferAmounts(debit=amount, credit=amount)


__all__ = [
    "TransferAmounts",
    "TransferPolicy",
    "compute_transfer_amounts",
    "transfer_policy",
]
