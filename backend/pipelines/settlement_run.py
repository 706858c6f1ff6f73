"""Standalone job that posts a market result and settles its wagers."""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Sequence

from loguru import logger

from app.core.config import get_settings
from app.db import init_db
from app.services.settlement_service import SettlementLedger, SettlementReport


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Settle every pending wager of a closed market against its closing result",
    )
    parser.add_argument("--market-id", type=int, required=True, help="Market to settle")
    parser.add_argument(
        "--closing-result",
        required=True,
        help="Two-digit closing draw used to classify wagers",
    )
    parser.add_argument(
        "--opening-result",
        default=None,
        help="Optional two-digit opening draw recorded alongside the closing result",
    )
    parser.add_argument(
        "--summary-path",
        type=Path,
        default=None,
        help="Optional path where a JSON settlement report will be written",
    )
    return parser.parse_args(argv)


def _write_summary(report: SettlementReport, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(report.to_dict(), default=str, indent=2))
    logger.info("Settlement report written to {}", path)


def main(argv: Sequence[str] | None = None) -> SettlementReport:
    args = _parse_args(argv)
    init_db()
    ledger = SettlementLedger(settings=get_settings())
    report = ledger.settle(args.market_id, args.closing_result, opening_result=args.opening_result)

    if report.failures:
        logger.warning(
            "Market {} left {} wagers unsettled; rerun after resolving the listed failures",
            report.market_id,
            len(report.failures),
        )
    if args.summary_path:
        _write_summary(report, args.summary_path)
    return report


if __name__ == "__main__":
    main()
