"""Standalone job that snapshots worst-case liability across open markets."""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Sequence

from loguru import logger

from app.core.config import get_settings
from app.db import init_db, session_scope
from app.services.exposure_service import ExposureAggregator, ExposureReport


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Report stake, worst-case payout, and per-bettor exposure for unsettled wagers",
    )
    parser.add_argument(
        "--regional-operator-id",
        type=int,
        default=None,
        help="Restrict the report to bettors assigned to one regional operator",
    )
    parser.add_argument(
        "--summary-path",
        type=Path,
        default=None,
        help="Optional path where the JSON exposure report will be written",
    )
    return parser.parse_args(argv)


def _write_summary(report: ExposureReport, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(report.to_dict(), default=str, indent=2))
    logger.info("Exposure report written to {}", path)


def main(argv: Sequence[str] | None = None) -> ExposureReport:
    args = _parse_args(argv)
    settings = get_settings()
    init_db()

    with session_scope() as session:
        report = ExposureAggregator(session, settings).aggregate_exposure(args.regional_operator_id)

    for market in report.per_market:
        if market.risk_level != "low":
            logger.warning(
                "Market {} ({}) is {} risk: worst case {} against stake {}",
                market.market_id,
                market.name,
                market.risk_level,
                market.worst_case_liability,
                market.total_stake,
            )
    if args.summary_path:
        _write_summary(report, args.summary_path)
    return report


if __name__ == "__main__":
    main()
