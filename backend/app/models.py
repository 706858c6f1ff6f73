from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .db import Base
from .domain.models import (
    LedgerEntryKind,
    MarketStatus,
    Mechanic,
    PrincipalTier,
    TransferKind,
    WagerOutcome,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Principal(Base):
    __tablename__ = "principals"

    principal_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    tier: Mapped[str] = mapped_column(String, nullable=False, default=PrincipalTier.BETTOR.value)
    balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    parent_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("principals.principal_id"), nullable=True, index=True
    )
    is_blocked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    parent: Mapped[Principal | None] = relationship("Principal", remote_side=[principal_id])
    wagers: Mapped[list["Wager"]] = relationship("Wager", back_populates="bettor")

    __table_args__ = (CheckConstraint("balance >= 0", name="ck_principal_balance_non_negative"),)


class Market(Base):
    __tablename__ = "markets"

    market_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default=MarketStatus.WAITING.value)
    open_result: Mapped[str | None] = mapped_column(String(2), nullable=True)
    close_result: Mapped[str | None] = mapped_column(String(2), nullable=True)
    resulted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    wagers: Mapped[list["Wager"]] = relationship("Wager", back_populates="market")


class Wager(Base):
    __tablename__ = "wagers"

    wager_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    bettor_id: Mapped[int] = mapped_column(Integer, ForeignKey("principals.principal_id"), nullable=False)
    market_id: Mapped[int] = mapped_column(Integer, ForeignKey("markets.market_id"), nullable=False)
    mechanic: Mapped[str] = mapped_column(String, nullable=False)
    prediction: Mapped[str] = mapped_column(String, nullable=False)
    stake: Mapped[int] = mapped_column(Integer, nullable=False)
    outcome: Mapped[str] = mapped_column(String, nullable=False, default=WagerOutcome.PENDING.value)
    payout: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    balance_after: Mapped[int | None] = mapped_column(Integer, nullable=True)
    resolved_odds: Mapped[int | None] = mapped_column(Integer, nullable=True)
    needs_review: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    review_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    settled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    bettor: Mapped[Principal] = relationship("Principal", back_populates="wagers")
    market: Mapped[Market] = relationship("Market", back_populates="wagers")

    __table_args__ = (
        CheckConstraint("stake > 0", name="ck_wager_stake_positive"),
        CheckConstraint("payout >= 0", name="ck_wager_payout_non_negative"),
        Index("ix_wagers_market_outcome", "market_id", "outcome"),
        Index("ix_wagers_bettor_created", "bettor_id", "created_at"),
    )


class OddsRule(Base):
    __tablename__ = "odds_rules"

    rule_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    mechanic: Mapped[str] = mapped_column(String, nullable=False)
    multiplier: Mapped[int] = mapped_column(Integer, nullable=False)
    # NULL scope is the platform default.
    regional_operator_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("principals.principal_id"), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint("multiplier > 0", name="ck_odds_rule_multiplier_positive"),
        Index("ix_odds_rules_scope", "mechanic", "regional_operator_id"),
    )


class CommissionRule(Base):
    __tablename__ = "commission_rules"

    rule_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    regional_operator_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("principals.principal_id"), nullable=True
    )
    category: Mapped[str] = mapped_column(String, nullable=False)
    rate_bps: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint("rate_bps >= 0 AND rate_bps <= 10000", name="ck_commission_rate_bounds"),
    )


class DiscountRule(Base):
    __tablename__ = "discount_rules"

    rule_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    regional_operator_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("principals.principal_id"), nullable=False
    )
    bettor_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("principals.principal_id"), nullable=True
    )
    category: Mapped[str] = mapped_column(String, nullable=False)
    rate_bps: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        CheckConstraint("rate_bps >= 0 AND rate_bps <= 10000", name="ck_discount_rate_bounds"),
    )


class LedgerEntry(Base):
    __tablename__ = "ledger_entries"

    entry_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # NULL principal marks funds entering from outside the platform.
    principal_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("principals.principal_id"), nullable=True, index=True
    )
    entry_kind: Mapped[str] = mapped_column(String, nullable=False, default=LedgerEntryKind.PAYOUT.value)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    balance_after: Mapped[int | None] = mapped_column(Integer, nullable=True)
    wager_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("wagers.wager_id"), nullable=True)
    counterparty_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("principals.principal_id"), nullable=True
    )
    transfer_kind: Mapped[str | None] = mapped_column(String, nullable=True)
    linked_entry_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("ledger_entries.entry_id"), nullable=True
    )
    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class SettlementFailureRecord(Base):
    __tablename__ = "settlement_failures"

    failure_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    market_id: Mapped[int] = mapped_column(Integer, ForeignKey("markets.market_id"), nullable=False)
    wager_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("wagers.wager_id"), nullable=True)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    retriable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    logged_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


__all__ = [
    "CommissionRule",
    "DiscountRule",
    "LedgerEntry",
    "LedgerEntryKind",
    "Market",
    "MarketStatus",
    "Mechanic",
    "OddsRule",
    "Principal",
    "PrincipalTier",
    "SettlementFailureRecord",
    "TransferKind",
    "Wager",
    "WagerOutcome",
    "utcnow",
]
