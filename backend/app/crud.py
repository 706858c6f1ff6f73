from __future__ import annotations

from sqlalchemy.orm import Session

from app.domain import (
    DEPOSIT_CATEGORY,
    InvalidMarketState,
    LedgerEntryKind,
    MarketStatus,
    Mechanic,
    PrincipalTier,
    TransferNotPermitted,
)
from app.repositories import LedgerRepository, MarketRepository, PrincipalRepository, RuleRepository, WagerRepository

from .models import CommissionRule, DiscountRule, Market, OddsRule, Principal, Wager


def create_principal(
    session: Session,
    *,
    username: str,
    tier: PrincipalTier | str,
    parent_id: int | None = None,
    opening_balance: int = 0,
) -> Principal:
    if opening_balance < 0:
        raise ValueError("Opening balance must not be negative")
    principal = PrincipalRepository(session).add(
        username=username,
        tier=tier,
        parent_id=parent_id,
        balance=opening_balance,
    )
    if opening_balance:
        LedgerRepository(session).append(
            principal_id=principal.principal_id,
            entry_kind=LedgerEntryKind.OPENING,
            amount=opening_balance,
            balance_after=opening_balance,
        )
    return principal


def create_market(session: Session, *, name: str, status: MarketStatus | str = MarketStatus.WAITING) -> Market:
    return MarketRepository(session).add(name=name, status=status)


def set_market_status(session: Session, market_id: int, status: MarketStatus | str) -> Market:
    return MarketRepository(session).set_status(market_id, status)


def place_wager(
    session: Session,
    *,
    bettor_id: int,
    market_id: int,
    mechanic: Mechanic | str,
    prediction: str,
    stake: int,
) -> Wager:
    """Record a pending wager; stake collection happens upstream."""

    market = MarketRepository(session).require(market_id)
    if market.status != MarketStatus.OPEN.value:
        raise InvalidMarketState(f"Market {market_id} is {market.status}; wagers are accepted only while open")
    bettor = PrincipalRepository(session).require(bettor_id)
    if bettor.tier != PrincipalTier.BETTOR.value or bettor.is_blocked:
        raise TransferNotPermitted(f"Principal {bettor_id} cannot place wagers")
    if stake <= 0:
        raise ValueError("Stake must be positive")
    return WagerRepository(session).add(
        bettor_id=bettor_id,
        market_id=market_id,
        mechanic=mechanic,
        prediction=prediction,
        stake=stake,
    )


def upsert_odds_rule(
    session: Session,
    mechanic: Mechanic | str,
    multiplier: int,
    *,
    regional_operator_id: int | None = None,
    is_active: bool = True,
) -> OddsRule:
    return RuleRepository(session).upsert_odds_rule(
        mechanic,
        multiplier,
        regional_operator_id=regional_operator_id,
        is_active=is_active,
    )


def set_commission_rule(
    session: Session,
    rate_bps: int,
    *,
    regional_operator_id: int | None = None,
    category: str = DEPOSIT_CATEGORY,
) -> CommissionRule:
    return RuleRepository(session).set_commission_rule(
        rate_bps,
        regional_operator_id=regional_operator_id,
        category=category,
    )


def set_discount_rule(
    session: Session,
    regional_operator_id: int,
    rate_bps: int,
    *,
    bettor_id: int | None = None,
    category: str = DEPOSIT_CATEGORY,
) -> DiscountRule:
    return RuleRepository(session).set_discount_rule(
        regional_operator_id,
        rate_bps,
        bettor_id=bettor_id,
        category=category,
    )
