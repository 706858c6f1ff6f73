from __future__ import annotations

from typing import Annotated

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session, sessionmaker

from . import schemas
from .core.config import settings
from .db import SessionLocal, get_db, init_db
from .domain import Mechanic, WageringError, nominal_multiplier
from .services.exposure_service import ExposureAggregator
from .services.ledger_audit import LedgerAuditService
from .services.odds_service import OddsResolutionService
from .services.settlement_service import SettlementLedger
from .services.transfer_service import FundTransferService

app = FastAPI(title="Wagering Settlement API", version="0.1.0", debug=settings.debug)


@app.on_event("startup")
def on_startup() -> None:
    """Create tables when the API boots."""

    init_db()


@app.exception_handler(WageringError)
async def wagering_error_handler(request: Request, exc: WageringError) -> JSONResponse:
    payload = schemas.ErrorResponse(error=exc.__class__.__name__, detail=str(exc))
    return JSONResponse(status_code=exc.status_code, content=payload.model_dump())


@app.get("/healthz", tags=["system"])
def healthcheck() -> dict[str, str]:
    """Basic readiness probe consumed by infrastructure monitors."""

    return {"status": "ok"}


def _session_factory() -> sessionmaker[Session]:
    return SessionLocal


def _odds_service(db=Depends(get_db)) -> OddsResolutionService:
    return OddsResolutionService(db)


def _settlement_ledger(factory=Depends(_session_factory)) -> SettlementLedger:
    """Settlement opens one transaction per wager, so it gets the factory."""

    return SettlementLedger(factory, settings)


def _transfer_service(factory=Depends(_session_factory)) -> FundTransferService:
    return FundTransferService(factory, settings)


def _exposure_aggregator(db=Depends(get_db)) -> ExposureAggregator:
    return ExposureAggregator(db, settings)


def _ledger_audit(db=Depends(get_db)) -> LedgerAuditService:
    return LedgerAuditService(db)


@app.get("/bettors/{bettor_id}/odds/{mechanic}", response_model=schemas.OddsQuote, tags=["odds"])
def resolve_odds(
    bettor_id: int,
    mechanic: str,
    service: OddsResolutionService = Depends(_odds_service),
):
    try:
        parsed = Mechanic.parse(mechanic)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    scaled = service.resolve_odds(bettor_id, parsed)
    return schemas.OddsQuote(
        bettor_id=bettor_id,
        mechanic=parsed.value,
        multiplier_scaled=scaled,
        multiplier=nominal_multiplier(scaled),
    )


@app.post("/markets/{market_id}/settlement", response_model=schemas.SettlementReport, tags=["settlement"])
def settle_market(
    market_id: int,
    payload: schemas.SettlementRequest,
    ledger: SettlementLedger = Depends(_settlement_ledger),
):
    report = ledger.settle(market_id, payload.closing_result, opening_result=payload.opening_result)
    return report.to_dict()


@app.post("/markets/wagers/{wager_id}/review", response_model=schemas.ReviewResponse, tags=["settlement"])
def flag_wager_for_review(
    wager_id: int,
    payload: schemas.ReviewRequest,
    ledger: SettlementLedger = Depends(_settlement_ledger),
):
    return ledger.flag_for_review(wager_id, payload.reason)


@app.get("/exposure", response_model=schemas.ExposureReport, tags=["exposure"])
def exposure_report(
    regional_operator_id: Annotated[
        int | None,
        Query(description="Restrict the report to bettors of one regional operator"),
    ] = None,
    aggregator: ExposureAggregator = Depends(_exposure_aggregator),
):
    return aggregator.aggregate_exposure(regional_operator_id).to_dict()


@app.post("/transfers", response_model=schemas.TransferReceipt, tags=["transfers"])
def transfer_funds(
    payload: schemas.TransferRequest,
    service: FundTransferService = Depends(_transfer_service),
):
    receipt = service.transfer_funds(payload.from_id, payload.to_id, payload.amount, payload.kind)
    return receipt.to_dict()


@app.get("/principals/{principal_id}/ledger/audit", response_model=schemas.LedgerAudit, tags=["ledger"])
def audit_ledger(principal_id: int, service: LedgerAuditService = Depends(_ledger_audit)):
    return service.verify_chain(principal_id).to_dict()
