"""Worst-case liability reporting over unsettled wagers."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from loguru import logger
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.domain import ConfigurationMissing, MarketStatus, choice_key, compute_payout
from app.models import Wager, utcnow
from app.repositories import MarketRepository, PrincipalRepository, WagerRepository

from .odds_service import MemoizedOddsResolver, OddsResolutionService

_SCANNED_STATUSES = (MarketStatus.OPEN, MarketStatus.CLOSED)


@dataclass(slots=True)
class ChoiceExposure:
    choice: str
    mechanic: str
    total_stake: int = 0
    potential_payout: int = 0
    wager_count: int = 0
    wager_ids: list[int] = field(default_factory=list)


@dataclass(slots=True)
class MarketExposure:
    market_id: int
    name: str
    status: str
    total_stake: int = 0
    worst_case_liability: int = 0
    potential_profit: int = 0
    pending_wagers: int = 0
    risk_level: str = "low"
    choices: list[ChoiceExposure] = field(default_factory=list)


@dataclass(slots=True)
class BettorExposure:
    bettor_id: int
    regional_operator_id: int | None
    total_stake: int = 0
    exposure: int = 0
    pending_wagers: int = 0


@dataclass(slots=True)
class RegionalOperatorExposure:
    regional_operator_id: int | None
    total_stake: int = 0
    potential_payout: int = 0
    pending_wagers: int = 0


@dataclass(slots=True)
class UnpricedWager:
    wager_id: int
    bettor_id: int
    market_id: int
    mechanic: str
    reason: str


@dataclass(slots=True)
class ExposureReport:
    """``per_bettor_worst_case`` is the largest single-bettor exposure; ``platform_worst_case``
    sums each market's worst-case liability, since markets resolve independently."""

    regional_operator_id: int | None
    generated_at: datetime
    per_market: list[MarketExposure] = field(default_factory=list)
    per_bettor: list[BettorExposure] = field(default_factory=list)
    per_regional_operator: list[RegionalOperatorExposure] = field(default_factory=list)
    per_bettor_worst_case: int = 0
    platform_worst_case: int = 0
    unpriced_wagers: list[UnpricedWager] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class ExposureAggregator:
    """Read-only view of what the platform stands to lose on open markets.

    Parity wagers on the same market are grouped by the side they back, since
    only one side can win. Digit-mechanic wagers are independent choices. The
    scan takes no locks; a wager settled mid-scan simply drops out of the next
    report.
    """

    def __init__(self, session: Session, settings: Settings | None = None) -> None:
        self._session = session
        self._settings = settings or get_settings()
        self._markets = MarketRepository(session)
        self._principals = PrincipalRepository(session)
        self._wagers = WagerRepository(session)
        self._odds = OddsResolutionService(session)

    def aggregate_exposure(self, regional_operator_id: int | None = None) -> ExposureReport:
        bettor_ids: list[int] | None = None
        if regional_operator_id is not None:
            self._principals.require(regional_operator_id)
            bettor_ids = self._principals.list_bettor_ids(parent_id=regional_operator_id)

        report = ExposureReport(regional_operator_id=regional_operator_id, generated_at=utcnow())
        markets = self._markets.list_with_pending_wagers(_SCANNED_STATUSES, bettor_ids=bettor_ids)
        if not markets:
            return report

        resolver = MemoizedOddsResolver(self._odds)
        regional_by_bettor: dict[int, int | None] = {}
        bettors: dict[int, BettorExposure] = {}
        regionals: dict[int | None, RegionalOperatorExposure] = {}

        wagers_by_market: dict[int, list[Wager]] = defaultdict(list)
        for wager in self._wagers.list_pending_for_markets(
            [market.market_id for market in markets], bettor_ids=bettor_ids
        ):
            wagers_by_market[wager.market_id].append(wager)

        for market in markets:
            entry = MarketExposure(market_id=market.market_id, name=market.name, status=market.status)
            choices: dict[str, ChoiceExposure] = {}

            for wager in wagers_by_market.get(market.market_id, []):
                try:
                    multiplier = resolver.resolve_odds(wager.bettor_id, wager.mechanic)
                    payout = compute_payout(wager.stake, multiplier)
                except ConfigurationMissing as exc:
                    report.unpriced_wagers.append(
                        UnpricedWager(
                            wager_id=wager.wager_id,
                            bettor_id=wager.bettor_id,
                            market_id=wager.market_id,
                            mechanic=wager.mechanic,
                            reason=str(exc),
                        )
                    )
                    payout = 0

                key = choice_key(wager.mechanic, wager.prediction)
                if key is None:
                    key = f"wager:{wager.wager_id}"
                    label = f"{wager.mechanic}:{wager.prediction}"
                else:
                    label = key
                choice = choices.get(key)
                if choice is None:
                    choice = choices[key] = ChoiceExposure(choice=label, mechanic=wager.mechanic)
                choice.total_stake += wager.stake
                choice.potential_payout += payout
                choice.wager_count += 1
                choice.wager_ids.append(wager.wager_id)

                entry.total_stake += wager.stake
                entry.pending_wagers += 1

                if wager.bettor_id not in regional_by_bettor:
                    regional_by_bettor[wager.bettor_id] = self._odds.regional_operator_for(wager.bettor_id)
                regional_id = regional_by_bettor[wager.bettor_id]

                bettor = bettors.get(wager.bettor_id)
                if bettor is None:
                    bettor = bettors[wager.bettor_id] = BettorExposure(
                        bettor_id=wager.bettor_id, regional_operator_id=regional_id
                    )
                bettor.total_stake += wager.stake
                bettor.exposure += payout
                bettor.pending_wagers += 1

                regional = regionals.get(regional_id)
                if regional is None:
                    regional = regionals[regional_id] = RegionalOperatorExposure(regional_operator_id=regional_id)
                regional.total_stake += wager.stake
                regional.potential_payout += payout
                regional.pending_wagers += 1

            if not choices:
                continue
            entry.choices = list(choices.values())
            entry.worst_case_liability = max(choice.potential_payout for choice in entry.choices)
            entry.potential_profit = entry.total_stake - entry.worst_case_liability
            entry.risk_level = self._risk_level(entry.worst_case_liability)
            report.per_market.append(entry)

        report.per_bettor = sorted(bettors.values(), key=lambda item: item.bettor_id)
        report.per_regional_operator = sorted(
            regionals.values(),
            key=lambda item: (item.regional_operator_id is None, item.regional_operator_id or 0),
        )
        report.per_bettor_worst_case = max((item.exposure for item in report.per_bettor), default=0)
        report.platform_worst_case = sum(item.worst_case_liability for item in report.per_market)

        if report.unpriced_wagers:
            logger.warning("Exposure report skipped pricing for {} wagers", len(report.unpriced_wagers))
        logger.info(
            "Exposure report markets={} platform_worst_case={} per_bettor_worst_case={}",
            len(report.per_market),
            report.platform_worst_case,
            report.per_bettor_worst_case,
        )
        return report

    def _risk_level(self, liability: int) -> str:
        if liability > self._settings.exposure_high_risk_threshold:
            return "high"
        if liability > self._settings.exposure_medium_risk_threshold:
            return "medium"
        return "low"


__all__ = [
    "BettorExposure",
    "ChoiceExposure",
    "ExposureAggregator",
    "ExposureReport",
    "MarketExposure",
    "RegionalOperatorExposure",
    "UnpricedWager",
]
