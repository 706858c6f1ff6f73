from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest

from app import crud
from app.core.config import Settings
from app.db import build_db_components, init_db, session_scope
from app.domain import MarketStatus, Mechanic, PrincipalTier


@dataclass(slots=True)
class SeededPrincipals:
    operator: int
    regional_a: int
    regional_b: int
    bettor_a1: int
    bettor_a2: int
    bettor_b1: int
    direct_bettor: int


@pytest.fixture
def test_settings(tmp_path, monkeypatch) -> Settings:
    settings = Settings(
        database_url=f"sqlite:///{tmp_path/'wagering.db'}",
        settlement_retry_attempts=3,
        settlement_retry_backoff_seconds=[0.01],
    )
    monkeypatch.setattr("app.core.config.get_settings", lambda: settings)
    monkeypatch.setattr("app.core.config.settings", settings)
    return settings


@pytest.fixture
def session_factory(test_settings):
    engine, factory = build_db_components(test_settings.resolved_database_url)
    init_db(bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def seeded(session_factory) -> SeededPrincipals:
    """Operator, two regional operators, their bettors, and platform-default odds."""

    with session_scope(session_factory) as session:
        operator = crud.create_principal(
            session, username="house", tier=PrincipalTier.OPERATOR, opening_balance=1_000_000
        )
        regional_a = crud.create_principal(
            session,
            username="north",
            tier=PrincipalTier.REGIONAL_OPERATOR,
            parent_id=operator.principal_id,
            opening_balance=50_000,
        )
        regional_b = crud.create_principal(
            session,
            username="south",
            tier=PrincipalTier.REGIONAL_OPERATOR,
            parent_id=operator.principal_id,
            opening_balance=50_000,
        )
        bettor_a1 = crud.create_principal(
            session, username="a1", tier=PrincipalTier.BETTOR, parent_id=regional_a.principal_id, opening_balance=1_000
        )
        bettor_a2 = crud.create_principal(
            session, username="a2", tier=PrincipalTier.BETTOR, parent_id=regional_a.principal_id
        )
        bettor_b1 = crud.create_principal(
            session, username="b1", tier=PrincipalTier.BETTOR, parent_id=regional_b.principal_id, opening_balance=500
        )
        direct = crud.create_principal(session, username="direct", tier=PrincipalTier.BETTOR)

        crud.upsert_odds_rule(session, Mechanic.EXACT_PAIR, 900_000)
        crud.upsert_odds_rule(session, Mechanic.POSITIONAL_DIGIT, 90_000)
        crud.upsert_odds_rule(session, Mechanic.CROSSING, 900_000)
        crud.upsert_odds_rule(session, Mechanic.PARITY, 19_000)

        return SeededPrincipals(
            operator=operator.principal_id,
            regional_a=regional_a.principal_id,
            regional_b=regional_b.principal_id,
            bettor_a1=bettor_a1.principal_id,
            bettor_a2=bettor_a2.principal_id,
            bettor_b1=bettor_b1.principal_id,
            direct_bettor=direct.principal_id,
        )


@pytest.fixture
def make_market(session_factory):
    def _make(name: str = "evening", status: MarketStatus = MarketStatus.OPEN) -> int:
        with session_scope(session_factory) as session:
            return crud.create_market(session, name=name, status=status).market_id

    return _make


@pytest.fixture
def place_wager(session_factory):
    def _place(bettor_id: int, market_id: int, mechanic: Mechanic | str, prediction: str, stake: int) -> int:
        with session_scope(session_factory) as session:
            return crud.place_wager(
                session,
                bettor_id=bettor_id,
                market_id=market_id,
                mechanic=mechanic,
                prediction=prediction,
                stake=stake,
            ).wager_id

    return _place


@pytest.fixture
def close_market(session_factory):
    def _close(market_id: int) -> None:
        with session_scope(session_factory) as session:
            crud.set_market_status(session, market_id, MarketStatus.CLOSED)

    return _close
