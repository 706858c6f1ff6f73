"""Commission and discount rate lookups for tier-to-tier transfers."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.domain import DEPOSIT_CATEGORY, PrincipalTier, TransferKind, TransferNotPermitted
from app.domain.tiers import TransferAmounts, TransferPolicy, compute_transfer_amounts, transfer_policy
from app.models import Principal
from app.repositories import RuleRepository


@dataclass(frozen=True, slots=True)
class TransferQuote:
    policy: TransferPolicy
    amounts: TransferAmounts
    commission_rate_bps: int = 0
    discount_rate_bps: int = 0


class CommissionCalculator:
    def __init__(self, session: Session, settings: Settings | None = None) -> None:
        self._rules = RuleRepository(session)
        self._settings = settings or get_settings()

    def commission_rate_bps(self, regional_operator_id: int) -> int:
        """Share of a deposit the operator actually pays for this regional operator."""

        rule = self._rules.find_commission_rule(regional_operator_id, DEPOSIT_CATEGORY)
        if rule is None:
            rule = self._rules.find_commission_rule(None, DEPOSIT_CATEGORY)
        if rule is None:
            return self._settings.default_deposit_commission_bps
        return int(rule.rate_bps)

    def discount_rate_bps(self, regional_operator_id: int, bettor_id: int) -> int:
        rule = self._rules.find_discount_rule(regional_operator_id, bettor_id, DEPOSIT_CATEGORY)
        if rule is None:
            rule = self._rules.find_discount_rule(regional_operator_id, None, DEPOSIT_CATEGORY)
        return int(rule.rate_bps) if rule is not None else 0

    def quote(
        self,
        source: Principal,
        target: Principal,
        amount: int,
        kind: TransferKind | str,
    ) -> TransferQuote:
        kind = TransferKind(kind)
        if kind is TransferKind.SELF_FUNDING and source.principal_id != target.principal_id:
            raise TransferNotPermitted("Self-funding must credit the funding operator itself")
        if kind is not TransferKind.SELF_FUNDING and source.principal_id == target.principal_id:
            raise TransferNotPermitted("A principal cannot transfer funds to itself")

        policy = transfer_policy(source.tier, target.tier, kind)
        commission_bps = 0
        discount_bps = 0

        if policy is TransferPolicy.COMMISSION:
            regional = source if source.tier == PrincipalTier.REGIONAL_OPERATOR.value else target
            commission_bps = self.commission_rate_bps(regional.principal_id)
        elif policy is TransferPolicy.DISCOUNT_BONUS:
            discount_bps = self.discount_rate_bps(source.principal_id, target.principal_id)

        _require_assignment(source, target)
        amounts = compute_transfer_amounts(
            policy,
            kind,
            amount,
            commission_bps=commission_bps,
            discount_bps=discount_bps,
        )
        return TransferQuote(
            policy=policy,
            amounts=amounts,
            commission_rate_bps=commission_bps,
            discount_rate_bps=discount_bps,
        )


def _require_assignment(source: Principal, target: Principal) -> None:
    tiers = {source.tier, target.tier}
    if tiers != {PrincipalTier.REGIONAL_OPERATOR.value, PrincipalTier.BETTOR.value}:
        return
    if source.tier == PrincipalTier.BETTOR.value:
        bettor, regional = source, target
    else:
        bettor, regional = target, source
    if bettor.parent_id != regional.principal_id:
        raise TransferNotPermitted(
            f"Bettor {bettor.principal_id} is not assigned to regional operator {regional.principal_id}"
        )


__all__ = ["CommissionCalculator", "TransferQuote"]
