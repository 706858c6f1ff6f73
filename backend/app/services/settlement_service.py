"""Apply a posted market result to its pending wagers."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from typing import Any

from loguru import logger
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import Settings, get_settings
from app.db import SessionLocal, session_scope
from app.domain import (
    ConfigurationMissing,
    InvalidMarketResult,
    InvalidMarketState,
    LedgerEntryKind,
    MarketStatus,
    WagerOutcome,
    WageringError,
    classify,
    compute_payout,
    is_valid_result,
)
from app.repositories import LedgerRepository, MarketRepository, PrincipalRepository, WagerRepository

from .odds_service import OddsResolutionService


@dataclass(slots=True)
class SettlementFailure:
    wager_id: int
    bettor_id: int | None
    mechanic: str | None
    reason: str
    retriable: bool

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class SettlementReport:
    market_id: int
    closing_result: str
    settled_count: int = 0
    won_count: int = 0
    lost_count: int = 0
    skipped_count: int = 0
    credited_total: int = 0
    failures: list[SettlementFailure] = field(default_factory=list)
    market_status: str = MarketStatus.CLOSED.value

    def to_dict(self) -> dict[str, Any]:
        return {
            "market_id": self.market_id,
            "closing_result": self.closing_result,
            "settled_count": self.settled_count,
            "won_count": self.won_count,
            "lost_count": self.lost_count,
            "skipped_count": self.skipped_count,
            "credited_total": self.credited_total,
            "failures": [failure.to_dict() for failure in self.failures],
            "market_status": self.market_status,
        }


@dataclass(slots=True)
class _WagerSettlement:
    outcome: WagerOutcome | None
    payout: int = 0


class SettlementLedger:
    """Settle every pending wager of a closed market.

    Each wager is settled in its own transaction: the outcome is claimed with
    a compare-and-set on ``pending``, the bettor is credited with a guarded SQL
    update, a payout ledger entry is written, and the resulting balance is
    stamped on the wager as ``balance_after``. A failing wager is recorded and
    the remaining wagers are still processed. The market only becomes
    ``resulted`` once nothing but wagers flagged for review is left pending.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        settings: Settings | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._session_factory = session_factory or SessionLocal
        self._settings = settings or get_settings()
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Public API

    def settle(
        self,
        market_id: int,
        closing_result: str,
        *,
        opening_result: str | None = None,
    ) -> SettlementReport:
        if not is_valid_result(closing_result):
            raise InvalidMarketResult(f"Closing result must be two digits, got {closing_result!r}")
        if opening_result is not None and not is_valid_result(opening_result):
            raise InvalidMarketResult(f"Opening result must be two digits, got {opening_result!r}")

        pending_ids = self._prepare_market(market_id, closing_result, opening_result)
        report = SettlementReport(market_id=market_id, closing_result=closing_result)
        logger.info(
            "Settling market {} with result {} ({} pending wagers)",
            market_id,
            closing_result,
            len(pending_ids),
        )

        for wager_id in pending_ids:
            try:
                settled = self._settle_with_retry(wager_id, closing_result)
            except ConfigurationMissing as exc:
                self._record_failure(report, wager_id, str(exc), retriable=True)
                continue
            except OperationalError as exc:
                self._record_failure(report, wager_id, f"Store unavailable: {exc.orig or exc}", retriable=True)
                continue
            except (WageringError, SQLAlchemyError) as exc:
                self._record_failure(report, wager_id, str(exc), retriable=False)
                continue

            if settled.outcome is None:
                report.skipped_count += 1
                continue
            report.settled_count += 1
            if settled.outcome is WagerOutcome.WIN:
                report.won_count += 1
                report.credited_total += settled.payout
            else:
                report.lost_count += 1

        report.market_status = self._finalize_market(market_id)
        logger.info(
            "Market {} settled={} won={} lost={} skipped={} credited={} failures={} status={}",
            market_id,
            report.settled_count,
            report.won_count,
            report.lost_count,
            report.skipped_count,
            report.credited_total,
            len(report.failures),
            report.market_status,
        )
        return report

    def flag_for_review(self, wager_id: int, reason: str) -> dict[str, Any]:
        """Mark a pending wager as needing manual intervention."""

        with session_scope(self._session_factory) as session:
            wagers = WagerRepository(session)
            wager = wagers.require(wager_id)
            if wager.outcome != WagerOutcome.PENDING.value:
                raise InvalidMarketState(f"Wager {wager_id} is already settled as {wager.outcome}")
            wagers.flag_for_review(wager_id, reason)
            market_id = wager.market_id

        with session_scope(self._session_factory) as session:
            markets = MarketRepository(session)
            market = markets.require(market_id)
            if (
                market.status == MarketStatus.CLOSED.value
                and market.close_result is not None
                and markets.count_unflagged_pending(market_id) == 0
            ):
                markets.mark_resulted(market_id)
                status = MarketStatus.RESULTED.value
            else:
                status = market.status

        logger.warning("Wager {} flagged for review: {}", wager_id, reason)
        return {"wager_id": wager_id, "market_id": market_id, "needs_review": True, "market_status": status}

    # ------------------------------------------------------------------
    # Internals

    def _prepare_market(self, market_id: int, closing_result: str, opening_result: str | None) -> list[int]:
        with session_scope(self._session_factory) as session:
            markets = MarketRepository(session)
            market = markets.require(market_id)

            if market.status == MarketStatus.RESULTED.value:
                if market.close_result != closing_result:
                    raise InvalidMarketState(
                        f"Market {market_id} already resulted with {market.close_result!r}"
                    )
            elif market.status == MarketStatus.CLOSED.value:
                if market.close_result is not None and market.close_result != closing_result:
                    raise InvalidMarketState(
                        f"Market {market_id} already has closing result {market.close_result!r}"
                    )
                markets.record_results(market_id, closing_result=closing_result, opening_result=opening_result)
            else:
                raise InvalidMarketState(
                    f"Market {market_id} is {market.status}; results can only be posted while closed"
                )

            return WagerRepository(session).list_pending_ids(market_id)

    def _settle_with_retry(self, wager_id: int, closing_result: str) -> _WagerSettlement:
        attempts = max(1, self._settings.settlement_retry_attempts)
        schedule = self._settings.retry_backoff_schedule
        attempt = 0
        while True:
            attempt += 1
            try:
                return self._settle_wager(wager_id, closing_result)
            except OperationalError as exc:
                if attempt >= attempts:
                    raise
                delay = schedule[min(attempt - 1, len(schedule) - 1)]
                logger.warning(
                    "Transient store error settling wager {} (attempt {}/{}); retrying in {}s: {}",
                    wager_id,
                    attempt,
                    attempts,
                    delay,
                    exc.orig or exc,
                )
                self._sleep(delay)

    def _settle_wager(self, wager_id: int, closing_result: str) -> _WagerSettlement:
        with session_scope(self._session_factory) as session:
            wagers = WagerRepository(session)
            wager = wagers.get(wager_id)
            if wager is None or wager.outcome != WagerOutcome.PENDING.value:
                return _WagerSettlement(outcome=None)

            outcome = classify(wager.mechanic, wager.prediction, closing_result)
            payout = 0
            resolved_odds: int | None = None
            if outcome is WagerOutcome.WIN:
                resolved_odds = OddsResolutionService(session).resolve_odds(wager.bettor_id, wager.mechanic)
                payout = compute_payout(wager.stake, resolved_odds)

            if not wagers.claim(wager_id, outcome=outcome, payout=payout, resolved_odds=resolved_odds):
                logger.debug("Wager {} was settled concurrently; skipping", wager_id)
                return _WagerSettlement(outcome=None)

            principals = PrincipalRepository(session)
            if payout > 0:
                balance_after = principals.credit(wager.bettor_id, payout)
                LedgerRepository(session).append(
                    principal_id=wager.bettor_id,
                    entry_kind=LedgerEntryKind.PAYOUT,
                    amount=payout,
                    balance_after=balance_after,
                    wager_id=wager_id,
                    details={"market_id": wager.market_id, "resolved_odds": resolved_odds},
                )
            else:
                balance_after = principals.current_balance(wager.bettor_id)
            wagers.set_balance_after(wager_id, balance_after)

        return _WagerSettlement(outcome=outcome, payout=payout)

    def _record_failure(self, report: SettlementReport, wager_id: int, reason: str, *, retriable: bool) -> None:
        bettor_id: int | None = None
        mechanic: str | None = None
        with session_scope(self._session_factory) as session:
            wager = WagerRepository(session).get(wager_id)
            if wager is not None:
                bettor_id = wager.bettor_id
                mechanic = wager.mechanic
            MarketRepository(session).log_failure(
                market_id=report.market_id,
                wager_id=wager_id,
                reason=reason,
                retriable=retriable,
                details={"closing_result": report.closing_result},
            )
        logger.warning("Failed to settle wager {} on market {}: {}", wager_id, report.market_id, reason)
        report.failures.append(
            SettlementFailure(
                wager_id=wager_id,
                bettor_id=bettor_id,
                mechanic=mechanic,
                reason=reason,
                retriable=retriable,
            )
        )

    def _finalize_market(self, market_id: int) -> str:
        with session_scope(self._session_factory) as session:
            markets = MarketRepository(session)
            if markets.count_unflagged_pending(market_id) == 0:
                markets.mark_resulted(market_id)
                return MarketStatus.RESULTED.value
            return markets.require(market_id).status


__all__ = ["SettlementFailure", "SettlementLedger", "SettlementReport"]
