from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

import pytest
from sqlalchemy import select, update
from sqlalchemy.exc import OperationalError

from app import crud
from app.db import session_scope
from app.domain import (
    InvalidMarketResult,
    InvalidMarketState,
    LedgerEntryKind,
    MarketStatus,
    Mechanic,
    WagerOutcome,
)
from app.models import LedgerEntry, Market, Principal, Wager
from app.repositories import LedgerRepository, MarketRepository
from app.services.ledger_audit import LedgerAuditService
from app.services.settlement_service import SettlementLedger


def _ledger(session_factory, test_settings, sleeps=None) -> SettlementLedger:
    recorder = sleeps if sleeps is not None else []
    return SettlementLedger(session_factory, test_settings, sleep=recorder.append)


def _balance(session_factory, principal_id: int) -> int:
    with session_scope(session_factory) as session:
        return session.get(Principal, principal_id).balance


def _wager(session_factory, wager_id: int) -> Wager:
    with session_scope(session_factory) as session:
        return session.get(Wager, wager_id)


@pytest.fixture
def mixed_market(seeded, make_market, place_wager, close_market):
    market_id = make_market()
    wagers = {
        "exact": place_wager(seeded.bettor_a1, market_id, Mechanic.EXACT_PAIR, "42", 10),
        "parity": place_wager(seeded.bettor_a1, market_id, Mechanic.PARITY, "odd", 100),
        "positional": place_wager(seeded.bettor_a2, market_id, Mechanic.POSITIONAL_DIGIT, "first:4", 20),
        "crossing": place_wager(seeded.bettor_b1, market_id, Mechanic.CROSSING, "2,4", 5),
    }
    close_market(market_id)
    return market_id, wagers


def test_settle_credits_winners_and_records_balance_chain(session_factory, test_settings, seeded, mixed_market):
    """Winners are paid at resolved odds and every wager gets a balance snapshot."""
    market_id, wagers = mixed_market

    report = _ledger(session_factory, test_settings).settle(market_id, "42")

    assert report.settled_count == 4
    assert report.won_count == 3
    assert report.lost_count == 1
    assert report.credited_total == 900 + 180 + 450
    assert report.failures == []
    assert report.market_status == MarketStatus.RESULTED.value

    assert _balance(session_factory, seeded.bettor_a1) == 1_900
    assert _balance(session_factory, seeded.bettor_a2) == 180
    assert _balance(session_factory, seeded.bettor_b1) == 950

    exact = _wager(session_factory, wagers["exact"])
    assert exact.outcome == WagerOutcome.WIN.value
    assert exact.payout == 900
    assert exact.resolved_odds == 900_000
    assert exact.balance_after == 1_900

    parity = _wager(session_factory, wagers["parity"])
    assert parity.outcome == WagerOutcome.LOSS.value
    assert parity.payout == 0
    assert parity.resolved_odds is None
    assert parity.balance_after == 1_900

    with session_scope(session_factory) as session:
        market = session.get(Market, market_id)
        assert market.close_result == "42"
        assert market.resulted_at is not None
        payouts = session.scalars(
            select(LedgerEntry).where(LedgerEntry.entry_kind == LedgerEntryKind.PAYOUT.value)
        ).all()
    assert sorted(entry.wager_id for entry in payouts) == sorted(
        [wagers["exact"], wagers["positional"], wagers["crossing"]]
    )


def test_settle_twice_is_idempotent(session_factory, test_settings, seeded, mixed_market):
    """A repeated settlement with the same result changes nothing."""
    market_id, _ = mixed_market
    ledger = _ledger(session_factory, test_settings)
    ledger.settle(market_id, "42")
    balances = [_balance(session_factory, pid) for pid in (seeded.bettor_a1, seeded.bettor_a2, seeded.bettor_b1)]

    again = ledger.settle(market_id, "42")

    assert again.settled_count == 0
    assert again.credited_total == 0
    assert again.market_status == MarketStatus.RESULTED.value
    assert [
        _balance(session_factory, pid) for pid in (seeded.bettor_a1, seeded.bettor_a2, seeded.bettor_b1)
    ] == balances


def test_resulted_market_rejects_a_different_result(session_factory, test_settings, mixed_market):
    """Once resulted, only the recorded closing result may be replayed."""
    market_id, _ = mixed_market
    ledger = _ledger(session_factory, test_settings)
    ledger.settle(market_id, "42")

    with pytest.raises(InvalidMarketState):
        ledger.settle(market_id, "24")


def test_open_market_cannot_be_settled(session_factory, test_settings, seeded, make_market, place_wager):
    """Settlement on a market that is not closed is rejected without side effects."""
    market_id = make_market()
    wager_id = place_wager(seeded.bettor_a1, market_id, Mechanic.EXACT_PAIR, "42", 10)

    with pytest.raises(InvalidMarketState):
        _ledger(session_factory, test_settings).settle(market_id, "42")

    with session_scope(session_factory) as session:
        assert session.get(Market, market_id).close_result is None
    assert _wager(session_factory, wager_id).outcome == WagerOutcome.PENDING.value


def test_malformed_result_is_rejected_before_touching_the_market(session_factory, test_settings, mixed_market):
    """Results must be exactly two digits."""
    market_id, _ = mixed_market
    with pytest.raises(InvalidMarketResult):
        _ledger(session_factory, test_settings).settle(market_id, "4")

    with session_scope(session_factory) as session:
        assert session.get(Market, market_id).status == MarketStatus.CLOSED.value


def test_missing_odds_fails_one_wager_without_blocking_the_rest(
    session_factory, test_settings, seeded, mixed_market
):
    """A wager with no odds rule is reported while the others settle."""
    market_id, wagers = mixed_market
    with session_scope(session_factory) as session:
        crud.upsert_odds_rule(session, Mechanic.CROSSING, 900_000, is_active=False)

    ledger = _ledger(session_factory, test_settings)
    report = ledger.settle(market_id, "42")

    assert report.settled_count == 3
    assert [failure.wager_id for failure in report.failures] == [wagers["crossing"]]
    assert report.failures[0].retriable is True
    assert report.failures[0].bettor_id == seeded.bettor_b1
    assert report.market_status == MarketStatus.CLOSED.value
    assert _wager(session_factory, wagers["crossing"]).outcome == WagerOutcome.PENDING.value
    assert _balance(session_factory, seeded.bettor_b1) == 500

    with session_scope(session_factory) as session:
        records = MarketRepository(session).list_failures(market_id)
    assert [record.wager_id for record in records] == [wagers["crossing"]]

    with session_scope(session_factory) as session:
        crud.upsert_odds_rule(session, Mechanic.CROSSING, 900_000)
    retry = ledger.settle(market_id, "42")

    assert retry.settled_count == 1
    assert retry.credited_total == 450
    assert retry.market_status == MarketStatus.RESULTED.value


def test_flagging_the_last_failed_wager_results_the_market(session_factory, test_settings, seeded, mixed_market):
    """A wager marked for manual review no longer holds the market open."""
    market_id, wagers = mixed_market
    with session_scope(session_factory) as session:
        crud.upsert_odds_rule(session, Mechanic.CROSSING, 900_000, is_active=False)
    ledger = _ledger(session_factory, test_settings)
    ledger.settle(market_id, "42")

    response = ledger.flag_for_review(wagers["crossing"], "operator to price manually")

    assert response["market_status"] == MarketStatus.RESULTED.value
    flagged = _wager(session_factory, wagers["crossing"])
    assert flagged.needs_review is True
    assert flagged.outcome == WagerOutcome.PENDING.value


def test_flagging_a_settled_wager_is_rejected(session_factory, test_settings, mixed_market):
    """Only pending wagers can be sent to manual review."""
    market_id, wagers = mixed_market
    ledger = _ledger(session_factory, test_settings)
    ledger.settle(market_id, "42")

    with pytest.raises(InvalidMarketState):
        ledger.flag_for_review(wagers["exact"], "too late")


def test_store_failure_rolls_back_the_whole_wager(session_factory, test_settings, seeded, mixed_market):
    """A failure after the claim leaves wager, balance, and ledger untouched."""
    market_id, wagers = mixed_market
    sleeps: list[float] = []
    failure = OperationalError("INSERT INTO ledger_entries", {}, Exception("database is locked"))

    with patch.object(LedgerRepository, "append", side_effect=failure):
        report = _ledger(session_factory, test_settings, sleeps).settle(market_id, "42")

    failed_ids = {item.wager_id for item in report.failures}
    assert failed_ids == {wagers["exact"], wagers["positional"], wagers["crossing"]}
    assert all(item.retriable for item in report.failures)
    assert report.lost_count == 1
    assert sleeps == [0.01, 0.01] * 3

    exact = _wager(session_factory, wagers["exact"])
    assert exact.outcome == WagerOutcome.PENDING.value
    assert exact.payout == 0
    assert exact.balance_after is None
    assert _balance(session_factory, seeded.bettor_a1) == 1_000
    assert report.market_status == MarketStatus.CLOSED.value


def test_transient_error_is_retried(session_factory, test_settings, seeded, mixed_market, monkeypatch):
    """A single transient store error is retried and the wager settles."""
    market_id, wagers = mixed_market
    original = SettlementLedger._settle_wager
    calls = {"count": 0}

    def flaky(self, wager_id, closing_result):
        calls["count"] += 1
        if calls["count"] == 1:
            raise OperationalError("UPDATE wagers", {}, Exception("database is locked"))
        return original(self, wager_id, closing_result)

    monkeypatch.setattr(SettlementLedger, "_settle_wager", flaky)
    sleeps: list[float] = []
    report = _ledger(session_factory, test_settings, sleeps).settle(market_id, "42")

    assert report.settled_count == 4
    assert report.failures == []
    assert sleeps == [0.01]


def test_concurrent_claim_is_skipped(session_factory, test_settings, seeded, mixed_market, monkeypatch):
    """If another settler resolves the wager first, this run does not credit it."""
    market_id, wagers = mixed_market
    from app.repositories import WagerRepository

    original_claim = WagerRepository.claim

    def racing_claim(self, wager_id, **kwargs):
        if wager_id == wagers["exact"]:
            with session_scope(session_factory) as other:
                other.execute(
                    update(Wager)
                    .where(Wager.wager_id == wager_id)
                    .values(outcome=WagerOutcome.LOSS.value)
                )
        return original_claim(self, wager_id, **kwargs)

    monkeypatch.setattr(WagerRepository, "claim", racing_claim)
    report = _ledger(session_factory, test_settings).settle(market_id, "42")

    assert report.skipped_count == 1
    assert report.settled_count == 3
    assert _balance(session_factory, seeded.bettor_a1) == 1_000


def test_balance_chain_holds_across_markets(
    session_factory, test_settings, seeded, make_market, place_wager, close_market
):
    """Each snapshot equals the bettor balance right after that wager settled."""
    first = make_market("morning")
    second = make_market("evening")
    w1 = place_wager(seeded.bettor_a1, first, Mechanic.PARITY, "even", 100)
    w2 = place_wager(seeded.bettor_a1, second, Mechanic.EXACT_PAIR, "17", 3)
    close_market(first)
    close_market(second)

    ledger = _ledger(session_factory, test_settings)
    ledger.settle(first, "48")
    ledger.settle(second, "17")

    assert _wager(session_factory, w1).balance_after == 1_000 + 190
    assert _wager(session_factory, w2).balance_after == 1_000 + 190 + 270
    with session_scope(session_factory) as session:
        audit = LedgerAuditService(session).verify_chain(seeded.bettor_a1)
        chain = LedgerAuditService(session).wager_chain(seeded.bettor_a1)
    assert audit.is_consistent
    assert audit.stored_balance == 1_460
    assert [link.balance_after for link in chain.links] == [1_190, 1_460]


def test_parallel_settlers_credit_each_wager_once(
    session_factory, test_settings, seeded, make_market, place_wager, close_market
):
    """Several settlers racing on one market pay every winner exactly once."""
    market_id = make_market()
    wager_ids = [place_wager(seeded.bettor_a2, market_id, Mechanic.EXACT_PAIR, "42", 10) for _ in range(20)]
    close_market(market_id)

    def _settle(_):
        return _ledger(session_factory, test_settings).settle(market_id, "42")

    with ThreadPoolExecutor(max_workers=4) as pool:
        reports = list(pool.map(_settle, range(4)))

    assert sum(report.settled_count for report in reports) == 20
    assert sum(report.credited_total for report in reports) == 18_000
    assert all(report.failures == [] for report in reports)
    assert _balance(session_factory, seeded.bettor_a2) == 18_000

    with session_scope(session_factory) as session:
        assert session.get(Market, market_id).status == MarketStatus.RESULTED.value
        payouts = session.scalars(
            select(LedgerEntry).where(LedgerEntry.entry_kind == LedgerEntryKind.PAYOUT.value)
        ).all()
        audit = LedgerAuditService(session).verify_chain(seeded.bettor_a2)
    assert sorted(entry.wager_id for entry in payouts) == sorted(wager_ids)
    assert audit.is_consistent
