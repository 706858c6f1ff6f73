"""Odds, commission, and discount rule lookups."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.domain import DEPOSIT_CATEGORY, Mechanic
from app.models import CommissionRule, DiscountRule, OddsRule


class RuleRepository:
    """Read and maintain the per-scope pricing rules."""

    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Odds

    def find_odds_rule(self, mechanic: Mechanic | str, regional_operator_id: int | None) -> OddsRule | None:
        """Active rule for exactly this scope; ``None`` scope is the platform default."""

        stmt = select(OddsRule).where(
            OddsRule.mechanic == Mechanic.parse(mechanic).value,
            OddsRule.is_active.is_(True),
        )
        if regional_operator_id is None:
            stmt = stmt.where(OddsRule.regional_operator_id.is_(None))
        else:
            stmt = stmt.where(OddsRule.regional_operator_id == regional_operator_id)
        return self._session.scalar(stmt.order_by(OddsRule.rule_id.desc()).limit(1))

    def upsert_odds_rule(
        self,
        mechanic: Mechanic | str,
        multiplier: int,
        *,
        regional_operator_id: int | None = None,
        is_active: bool = True,
    ) -> OddsRule:
        mechanic_value = Mechanic.parse(mechanic).value
        stmt = select(OddsRule).where(OddsRule.mechanic == mechanic_value)
        if regional_operator_id is None:
            stmt = stmt.where(OddsRule.regional_operator_id.is_(None))
        else:
            stmt = stmt.where(OddsRule.regional_operator_id == regional_operator_id)
        rule = self._session.scalar(stmt.limit(1))
        if rule is None:
            rule = OddsRule(mechanic=mechanic_value, regional_operator_id=regional_operator_id)
            self._session.add(rule)
        rule.multiplier = multiplier
        rule.is_active = is_active
        self._session.flush()
        return rule

    # ------------------------------------------------------------------
    # Commission and discount

    def find_commission_rule(
        self,
        regional_operator_id: int | None,
        category: str = DEPOSIT_CATEGORY,
    ) -> CommissionRule | None:
        stmt = select(CommissionRule).where(
            CommissionRule.category == category,
            CommissionRule.is_active.is_(True),
        )
        if regional_operator_id is None:
            stmt = stmt.where(CommissionRule.regional_operator_id.is_(None))
        else:
            stmt = stmt.where(CommissionRule.regional_operator_id == regional_operator_id)
        return self._session.scalar(stmt.order_by(CommissionRule.rule_id.desc()).limit(1))

    def set_commission_rule(
        self,
        rate_bps: int,
        *,
        regional_operator_id: int | None = None,
        category: str = DEPOSIT_CATEGORY,
    ) -> CommissionRule:
        rule = self.find_commission_rule(regional_operator_id, category)
        if rule is None:
            rule = CommissionRule(regional_operator_id=regional_operator_id, category=category)
            self._session.add(rule)
        rule.rate_bps = rate_bps
        self._session.flush()
        return rule

    def find_discount_rule(
        self,
        regional_operator_id: int,
        bettor_id: int | None,
        category: str = DEPOSIT_CATEGORY,
    ) -> DiscountRule | None:
        stmt = select(DiscountRule).where(
            DiscountRule.regional_operator_id == regional_operator_id,
            DiscountRule.category == category,
            DiscountRule.is_active.is_(True),
        )
        if bettor_id is None:
            stmt = stmt.where(DiscountRule.bettor_id.is_(None))
        else:
            stmt = stmt.where(DiscountRule.bettor_id == bettor_id)
        return self._session.scalar(stmt.order_by(DiscountRule.rule_id.desc()).limit(1))

    def set_discount_rule(
        self,
        regional_operator_id: int,
        rate_bps: int,
        *,
        bettor_id: int | None = None,
        category: str = DEPOSIT_CATEGORY,
    ) -> DiscountRule:
        rule = self.find_discount_rule(regional_operator_id, bettor_id, category)
        if rule is None:
            rule = DiscountRule(
                regional_operator_id=regional_operator_id,
                bettor_id=bettor_id,
                category=category,
            )
            self._session.add(rule)
        rule.rate_bps = rate_bps
        self._session.flush()
        return rule


__all__ = ["RuleRepository"]
