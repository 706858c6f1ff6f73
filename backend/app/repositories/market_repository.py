"""Market-focused data access helpers."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from app.domain import InvalidMarketState, MarketNotFound, MarketStatus, WagerOutcome
from app.models import Market, SettlementFailureRecord, Wager, utcnow


class MarketRepository:
    """Encapsulate market lifecycle and settlement bookkeeping."""

    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Mutations

    def add(self, *, name: str, status: MarketStatus | str = MarketStatus.WAITING) -> Market:
        market = Market(name=name, status=MarketStatus(status).value)
        self._session.add(market)
        self._session.flush()
        return market

    def set_status(self, market_id: int, status: MarketStatus | str) -> Market:
        """Advance a market one lifecycle step; ``resulted`` is reached only by settlement."""

        market = self.require(market_id)
        current = MarketStatus(market.status)
        target = MarketStatus(status)
        if target is current:
            return market
        if target is MarketStatus.RESULTED or target.rank != current.rank + 1:
            raise InvalidMarketState(f"Market {market_id} cannot move from {current.value} to {target.value}")
        market.status = target.value
        return market

    def record_results(
        self,
        market_id: int,
        *,
        closing_result: str,
        opening_result: str | None = None,
    ) -> Market:
        market = self.require(market_id)
        market.close_result = closing_result
        if opening_result is not None:
            market.open_result = opening_result
        return market

    def mark_resulted(self, market_id: int, *, resulted_at: datetime | None = None) -> bool:
        """Flip a market to ``resulted`` unless it already is."""

        result = self._session.execute(
            update(Market)
            .where(Market.market_id == market_id, Market.status != MarketStatus.RESULTED.value)
            .values(status=MarketStatus.RESULTED.value, resulted_at=resulted_at or utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    def log_failure(
        self,
        *,
        market_id: int,
        wager_id: int | None,
        reason: str,
        retriable: bool,
        details: dict | None = None,
    ) -> SettlementFailureRecord:
        record = SettlementFailureRecord(
            market_id=market_id,
            wager_id=wager_id,
            reason=reason,
            retriable=retriable,
            details=details,
        )
        self._session.add(record)
        return record

    # ------------------------------------------------------------------
    # Queries

    def get(self, market_id: int) -> Market | None:
        return self._session.get(Market, market_id)

    def require(self, market_id: int) -> Market:
        market = self.get(market_id)
        if market is None:
            raise MarketNotFound(market_id)
        return market

    def list_with_pending_wagers(
        self,
        statuses: Iterable[MarketStatus | str],
        *,
        bettor_ids: Iterable[int] | None = None,
    ) -> list[Market]:
        status_values = [MarketStatus(status).value for status in statuses]
        pending = select(Wager.market_id).where(Wager.outcome == WagerOutcome.PENDING.value)
        if bettor_ids is not None:
            pending = pending.where(Wager.bettor_id.in_(list(bettor_ids)))
        stmt = (
            select(Market)
            .where(Market.status.in_(status_values), Market.market_id.in_(pending))
            .order_by(Market.market_id)
        )
        return list(self._session.scalars(stmt))

    def count_unflagged_pending(self, market_id: int) -> int:
        stmt = select(func.count(Wager.wager_id)).where(
            Wager.market_id == market_id,
            Wager.outcome == WagerOutcome.PENDING.value,
            Wager.needs_review.is_(False),
        )
        return int(self._session.scalar(stmt) or 0)

    def list_failures(self, market_id: int) -> list[SettlementFailureRecord]:
        stmt = (
            select(SettlementFailureRecord)
            .where(SettlementFailureRecord.market_id == market_id)
            .order_by(SettlementFailureRecord.failure_id)
        )
        return list(self._session.scalars(stmt))


__all__ = ["MarketRepository"]
