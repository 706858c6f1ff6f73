from __future__ import annotations

import json
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

from pipelines import exposure_run, settlement_run
from app.services.exposure_service import ExposureReport, MarketExposure
from app.services.settlement_service import SettlementReport


@patch("pipelines.settlement_run.init_db")
@patch("pipelines.settlement_run.SettlementLedger")
def test_settlement_run_writes_summary(mock_ledger_cls, mock_init_db, tmp_path):
    """Verify the settlement job settles the market and writes its report."""
    mock_ledger_cls.return_value.settle.return_value = SettlementReport(
        market_id=3, closing_result="42", settled_count=1, won_count=1, credited_total=900, market_status="resulted"
    )
    summary_path = tmp_path / "out" / "settlement.json"

    report = settlement_run.main(
        ["--market-id", "3", "--closing-result", "42", "--opening-result", "17", "--summary-path", str(summary_path)]
    )

    mock_init_db.assert_called_once_with()
    mock_ledger_cls.return_value.settle.assert_called_once_with(3, "42", opening_result="17")
    assert report.credited_total == 900
    assert json.loads(summary_path.read_text())["market_status"] == "resulted"


@patch("pipelines.exposure_run.init_db")
@patch("pipelines.exposure_run.session_scope")
@patch("pipelines.exposure_run.ExposureAggregator")
def test_exposure_run_writes_summary(mock_aggregator_cls, mock_scope, mock_init_db, tmp_path):
    """Verify the exposure job scopes the report and serializes timestamps."""
    mock_scope.return_value.__enter__.return_value = MagicMock()
    mock_aggregator_cls.return_value.aggregate_exposure.return_value = ExposureReport(
        regional_operator_id=2,
        generated_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        per_market=[
            MarketExposure(
                market_id=1,
                name="evening",
                status="open",
                total_stake=600,
                worst_case_liability=54_000,
                potential_profit=-53_400,
                pending_wagers=1,
                risk_level="high",
            )
        ],
        platform_worst_case=54_000,
    )
    summary_path = tmp_path / "exposure.json"

    report = exposure_run.main(["--regional-operator-id", "2", "--summary-path", str(summary_path)])

    mock_aggregator_cls.return_value.aggregate_exposure.assert_called_once_with(2)
    assert report.platform_worst_case == 54_000
    written = json.loads(summary_path.read_text())
    assert written["per_market"][0]["risk_level"] == "high"
    assert written["generated_at"].startswith("2024-01-01")
