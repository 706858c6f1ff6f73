from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field, field_validator

from app.domain import TransferKind, is_valid_result


class OddsQuote(BaseModel):
    bettor_id: int
    mechanic: str
    multiplier_scaled: int
    multiplier: Decimal


class SettlementRequest(BaseModel):
    closing_result: str = Field(description="Two-digit closing draw, e.g. '42'")
    opening_result: str | None = Field(default=None, description="Optional two-digit opening draw")

    @field_validator("closing_result", "opening_result")
    @classmethod
    def _two_digits(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        if not is_valid_result(value):
            raise ValueError("result must be exactly two digits")
        return value


class SettlementFailure(BaseModel):
    wager_id: int
    bettor_id: int | None = None
    mechanic: str | None = None
    reason: str
    retriable: bool


class SettlementReport(BaseModel):
    market_id: int
    closing_result: str
    settled_count: int
    won_count: int
    lost_count: int
    skipped_count: int
    credited_total: int
    failures: list[SettlementFailure] = Field(default_factory=list)
    market_status: str


class ReviewRequest(BaseModel):
    reason: str = Field(min_length=1, max_length=500)


class ReviewResponse(BaseModel):
    wager_id: int
    market_id: int
    needs_review: bool
    market_status: str


class ChoiceExposure(BaseModel):
    choice: str
    mechanic: str
    total_stake: int
    potential_payout: int
    wager_count: int
    wager_ids: list[int] = Field(default_factory=list)


class MarketExposure(BaseModel):
    market_id: int
    name: str
    status: str
    total_stake: int
    worst_case_liability: int
    potential_profit: int
    pending_wagers: int
    risk_level: str
    choices: list[ChoiceExposure] = Field(default_factory=list)


class BettorExposure(BaseModel):
    bettor_id: int
    regional_operator_id: int | None = None
    total_stake: int
    exposure: int
    pending_wagers: int


class RegionalOperatorExposure(BaseModel):
    regional_operator_id: int | None = None
    total_stake: int
    potential_payout: int
    pending_wagers: int


class UnpricedWager(BaseModel):
    wager_id: int
    bettor_id: int
    market_id: int
    mechanic: str
    reason: str


class ExposureReport(BaseModel):
    regional_operator_id: int | None = None
    generated_at: datetime
    per_market: list[MarketExposure] = Field(default_factory=list)
    per_bettor: list[BettorExposure] = Field(default_factory=list)
    per_regional_operator: list[RegionalOperatorExposure] = Field(default_factory=list)
    per_bettor_worst_case: int
    platform_worst_case: int
    unpriced_wagers: list[UnpricedWager] = Field(default_factory=list)


class TransferRequest(BaseModel):
    from_id: int
    to_id: int
    amount: int = Field(gt=0, description="Nominal amount in minor currency units")
    kind: TransferKind


class TransferReceipt(BaseModel):
    from_ledger_entry_id: int
    to_ledger_entry_id: int
    debited: int
    credited: int
    bonus: int = 0
    commission_rate_bps: int = 0
    discount_rate_bps: int = 0


class ChainBreak(BaseModel):
    entry_id: int
    expected_balance: int
    recorded_balance: int | None = None


class LedgerAudit(BaseModel):
    principal_id: int
    entry_count: int
    stored_balance: int
    replayed_balance: int
    is_consistent: bool
    first_break: ChainBreak | None = None


class ErrorResponse(BaseModel):
    error: str
    detail: str
    context: dict[str, Any] | None = None
