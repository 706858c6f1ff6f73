"""Consistency checks over the per-principal ledger chain."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

from sqlalchemy.orm import Session

from app.repositories import LedgerRepository, PrincipalRepository, WagerRepository


@dataclass(slots=True)
class ChainBreak:
    entry_id: int
    expected_balance: int
    recorded_balance: int | None


@dataclass(slots=True)
class LedgerAudit:
    principal_id: int
    entry_count: int
    stored_balance: int
    replayed_balance: int
    is_consistent: bool
    first_break: ChainBreak | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class WagerChainLink:
    wager_id: int
    market_id: int
    outcome: str
    payout: int
    balance_after: int | None


@dataclass(slots=True)
class WagerChain:
    bettor_id: int
    links: list[WagerChainLink] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class LedgerAuditService:
    def __init__(self, session: Session) -> None:
        self._principals = PrincipalRepository(session)
        self._ledger = LedgerRepository(session)
        self._wagers = WagerRepository(session)

    def verify_chain(self, principal_id: int) -> LedgerAudit:
        """Replay ledger entries in order and compare against each snapshot."""

        principal = self._principals.require(principal_id)
        entries = self._ledger.list_for_principal(principal_id)

        running = 0
        first_break: ChainBreak | None = None
        for entry in entries:
            running += entry.amount
            if first_break is None and entry.balance_after != running:
                first_break = ChainBreak(
                    entry_id=entry.entry_id,
                    expected_balance=running,
                    recorded_balance=entry.balance_after,
                )

        stored = self._principals.current_balance(principal.principal_id)
        return LedgerAudit(
            principal_id=principal_id,
            entry_count=len(entries),
            stored_balance=stored,
            replayed_balance=running,
            is_consistent=first_break is None and running == stored,
            first_break=first_break,
        )

    def wager_chain(self, bettor_id: int) -> WagerChain:
        self._principals.require(bettor_id)
        chain = WagerChain(bettor_id=bettor_id)
        for wager in self._wagers.list_settled_for_bettor(bettor_id):
            chain.links.append(
                WagerChainLink(
                    wager_id=wager.wager_id,
                    market_id=wager.market_id,
                    outcome=wager.outcome,
                    payout=wager.payout,
                    balance_after=wager.balance_after,
                )
            )
        return chain


__all__ = ["ChainBreak", "LedgerAudit", "LedgerAuditService", "WagerChain", "WagerChainLink"]
