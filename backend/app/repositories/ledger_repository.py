"""Append-only ledger entry helpers."""

from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.domain import LedgerEntryKind, TransferKind
from app.models import LedgerEntry


class LedgerRepository:
    def __init__(self, session: Session) -> None:
        self._session = session

    def append(
        self,
        *,
        principal_id: int | None,
        entry_kind: LedgerEntryKind,
        amount: int,
        balance_after: int | None,
        wager_id: int | None = None,
        counterparty_id: int | None = None,
        transfer_kind: TransferKind | None = None,
        details: dict[str, Any] | None = None,
    ) -> LedgerEntry:
        entry = LedgerEntry(
            principal_id=principal_id,
            entry_kind=entry_kind.value,
            amount=amount,
            balance_after=balance_after,
            wager_id=wager_id,
            counterparty_id=counterparty_id,
            transfer_kind=transfer_kind.value if transfer_kind else None,
            details=details,
        )
        self._session.add(entry)
        self._session.flush()
        return entry

    def link(self, first: LedgerEntry, second: LedgerEntry) -> None:
        first.linked_entry_id = second.entry_id
        second.linked_entry_id = first.entry_id
        self._session.flush()

    def list_for_principal(self, principal_id: int) -> list[LedgerEntry]:
        stmt = (
            select(LedgerEntry)
            .where(LedgerEntry.principal_id == principal_id)
            .order_by(LedgerEntry.entry_id)
        )
        return list(self._session.scalars(stmt))


__all__ = ["LedgerRepository"]
