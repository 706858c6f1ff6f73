"""Atomic fund movements between principals."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from loguru import logger
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import Settings, get_settings
from app.db import SessionLocal, session_scope
from app.domain import InsufficientFunds, LedgerEntryKind, TransferKind, TransferNotPermitted
from app.repositories import LedgerRepository, PrincipalRepository

from .commission_service import CommissionCalculator


@dataclass(slots=True)
class TransferReceipt:
    from_ledger_entry_id: int
    to_ledger_entry_id: int
    debited: int
    credited: int
    bonus: int = 0
    commission_rate_bps: int = 0
    discount_rate_bps: int = 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class FundTransferService:
    """Move funds between two principals inside one transaction.

    Both principals are locked in ascending id order, the debit is a guarded
    ``balance >= amount`` update, and the two resulting ledger entries point
    at each other. Any failure rolls the whole transfer back.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._session_factory = session_factory or SessionLocal
        self._settings = settings or get_settings()

    def transfer_funds(
        self,
        from_id: int,
        to_id: int,
        amount: int,
        kind: TransferKind | str,
    ) -> TransferReceipt:
        try:
            kind = TransferKind(kind)
        except ValueError as exc:
            raise TransferNotPermitted(f"Unknown transfer kind {kind!r}") from exc
        if amount <= 0:
            raise TransferNotPermitted("Transfer amount must be positive")

        try:
            receipt = self._transfer(from_id, to_id, amount, kind)
        except (InsufficientFunds, TransferNotPermitted) as exc:
            logger.warning("Transfer {} {} -> {} of {} rejected: {}", kind.value, from_id, to_id, amount, exc)
            raise

        logger.info(
            "Transfer {} {} -> {} nominal={} debited={} credited={} bonus={}",
            kind.value,
            from_id,
            to_id,
            amount,
            receipt.debited,
            receipt.credited,
            receipt.bonus,
        )
        return receipt

    def _transfer(self, from_id: int, to_id: int, amount: int, kind: TransferKind) -> TransferReceipt:
        with session_scope(self._session_factory) as session:
            principals = PrincipalRepository(session)
            locked = principals.lock_many({from_id, to_id})
            source, target = locked[from_id], locked[to_id]
            for principal in (source, target):
                if principal.is_blocked:
                    raise TransferNotPermitted(f"Principal {principal.principal_id} is blocked")

            quote = CommissionCalculator(session, self._settings).quote(source, target, amount, kind)
            amounts = quote.amounts
            details = {
                "nominal_amount": amount,
                "policy": quote.policy.value,
                "commission_rate_bps": quote.commission_rate_bps,
                "discount_rate_bps": quote.discount_rate_bps,
                "bonus": amounts.bonus,
                "commission": amounts.commission,
            }
            ledger = LedgerRepository(session)

            if kind is TransferKind.SELF_FUNDING:
                balance = principals.credit(to_id, amounts.credit)
                source_entry = ledger.append(
                    principal_id=None,
                    entry_kind=LedgerEntryKind.EXTERNAL_SOURCE,
                    amount=-amounts.debit,
                    balance_after=None,
                    counterparty_id=to_id,
                    transfer_kind=kind,
                    details=details,
                )
                target_entry = ledger.append(
                    principal_id=to_id,
                    entry_kind=LedgerEntryKind.TRANSFER_CREDIT,
                    amount=amounts.credit,
                    balance_after=balance,
                    transfer_kind=kind,
                    details=details,
                )
            else:
                balances: dict[int, int] = {}
                for principal_id in sorted((from_id, to_id)):
                    if principal_id == from_id:
                        balances[principal_id] = principals.debit(from_id, amounts.debit)
                    else:
                        balances[principal_id] = principals.credit(to_id, amounts.credit)
                source_entry = ledger.append(
                    principal_id=from_id,
                    entry_kind=LedgerEntryKind.TRANSFER_DEBIT,
                    amount=-amounts.debit,
                    balance_after=balances[from_id],
                    counterparty_id=to_id,
                    transfer_kind=kind,
                    details=details,
                )
                target_entry = ledger.append(
                    principal_id=to_id,
                    entry_kind=LedgerEntryKind.TRANSFER_CREDIT,
                    amount=amounts.credit,
                    balance_after=balances[to_id],
                    counterparty_id=from_id,
                    transfer_kind=kind,
                    details=details,
                )
            ledger.link(source_entry, target_entry)

            return TransferReceipt(
                from_ledger_entry_id=source_entry.entry_id,
                to_ledger_entry_id=target_entry.entry_id,
                debited=amounts.debit,
                credited=amounts.credit,
                bonus=amounts.bonus,
                commission_rate_bps=quote.commission_rate_bps,
                discount_rate_bps=quote.discount_rate_bps,
            )


__all__ = ["FundTransferService", "TransferReceipt"]
