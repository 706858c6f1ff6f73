"""Wager persistence and settlement claims."""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.domain import Mechanic, WagerNotFound, WagerOutcome
from app.models import Wager, utcnow


class WagerRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Mutations

    def add(
        self,
        *,
        bettor_id: int,
        market_id: int,
        mechanic: Mechanic | str,
        prediction: str,
        stake: int,
    ) -> Wager:
        wager = Wager(
            bettor_id=bettor_id,
            market_id=market_id,
            mechanic=Mechanic.parse(mechanic).value,
            prediction=prediction,
            stake=stake,
        )
        self._session.add(wager)
        self._session.flush()
        return wager

    def claim(
        self,
        wager_id: int,
        *,
        outcome: WagerOutcome,
        payout: int,
        resolved_odds: int | None,
    ) -> bool:
        """Move a wager out of ``pending``; ``False`` means another settler won."""

        result = self._session.execute(
            update(Wager)
            .where(Wager.wager_id == wager_id, Wager.outcome == WagerOutcome.PENDING.value)
            .values(
                outcome=outcome.value,
                payout=payout,
                resolved_odds=resolved_odds,
                settled_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def set_balance_after(self, wager_id: int, balance_after: int) -> None:
        self._session.execute(
            update(Wager)
            .where(Wager.wager_id == wager_id)
            .values(balance_after=balance_after)
            .execution_options(synchronize_session=False)
        )

    def flag_for_review(self, wager_id: int, reason: str) -> Wager:
        wager = self.require(wager_id)
        wager.needs_review = True
        wager.review_reason = reason
        return wager

    # ------------------------------------------------------------------
    # Queries

    def get(self, wager_id: int) -> Wager | None:
        return self._session.get(Wager, wager_id)

    def require(self, wager_id: int) -> Wager:
        wager = self.get(wager_id)
        if wager is None:
            raise WagerNotFound(wager_id)
        return wager

    def list_pending_ids(self, market_id: int) -> list[int]:
        stmt = (
            select(Wager.wager_id)
            .where(Wager.market_id == market_id, Wager.outcome == WagerOutcome.PENDING.value)
            .order_by(Wager.created_at, Wager.wager_id)
        )
        return list(self._session.scalars(stmt))

    def list_pending_for_markets(
        self,
        market_ids: Iterable[int],
        *,
        bettor_ids: Iterable[int] | None = None,
    ) -> list[Wager]:
        stmt = select(Wager).where(
            Wager.market_id.in_(list(market_ids)),
            Wager.outcome == WagerOutcome.PENDING.value,
        )
        if bettor_ids is not None:
            stmt = stmt.where(Wager.bettor_id.in_(list(bettor_ids)))
        return list(self._session.scalars(stmt.order_by(Wager.market_id, Wager.created_at, Wager.wager_id)))

    def list_settled_for_bettor(self, bettor_id: int) -> list[Wager]:
        stmt = (
            select(Wager)
            .where(Wager.bettor_id == bettor_id, Wager.outcome != WagerOutcome.PENDING.value)
            .order_by(Wager.created_at, Wager.wager_id)
        )
        return list(self._session.scalars(stmt))


__all__ = ["WagerRepository"]
