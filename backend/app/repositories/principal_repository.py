"""Principal and balance persistence helpers."""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.domain import InsufficientFunds, PrincipalNotFound, PrincipalTier
from app.models import Principal


class PrincipalRepository:
    """Read principals and move their balances with guarded SQL updates."""

    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Queries

    def get(self, principal_id: int) -> Principal | None:
        return self._session.get(Principal, principal_id)

    def require(self, principal_id: int) -> Principal:
        principal = self.get(principal_id)
        if principal is None:
            raise PrincipalNotFound(principal_id)
        return principal

    def lock_many(self, principal_ids: Iterable[int]) -> dict[int, Principal]:
        """Load principals in ascending id order, row-locking where supported."""

        ordered = sorted(set(principal_ids))
        stmt = (
            select(Principal)
            .where(Principal.principal_id.in_(ordered))
            .order_by(Principal.principal_id)
            .with_for_update()
        )
        found = {principal.principal_id: principal for principal in self._session.scalars(stmt)}
        for principal_id in ordered:
            if principal_id not in found:
                raise PrincipalNotFound(principal_id)
        return found

    def current_balance(self, principal_id: int) -> int:
        balance = self._session.scalar(
            select(Principal.balance).where(Principal.principal_id == principal_id)
        )
        if balance is None:
            raise PrincipalNotFound(principal_id)
        return int(balance)

    def list_bettor_ids(self, *, parent_id: int | None = None) -> list[int]:
        stmt = select(Principal.principal_id).where(Principal.tier == PrincipalTier.BETTOR.value)
        if parent_id is not None:
            stmt = stmt.where(Principal.parent_id == parent_id)
        return list(self._session.scalars(stmt.order_by(Principal.principal_id)))

    # ------------------------------------------------------------------
    # Mutations

    def add(
        self,
        *,
        username: str,
        tier: PrincipalTier | str,
        parent_id: int | None = None,
        balance: int = 0,
    ) -> Principal:
        principal = Principal(
            username=username,
            tier=PrincipalTier(tier).value,
            parent_id=parent_id,
            balance=balance,
        )
        self._session.add(principal)
        self._session.flush()
        return principal

    def credit(self, principal_id: int, amount: int) -> int:
        """Add ``amount`` and return the resulting balance."""

        if amount < 0:
            raise ValueError("Credit amount must not be negative")
        result = self._session.execute(
            update(Principal)
            .where(Principal.principal_id == principal_id)
            .values(balance=Principal.balance + amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise PrincipalNotFound(principal_id)
        return self._refresh_balance(principal_id)

    def debit(self, principal_id: int, amount: int) -> int:
        """Subtract ``amount`` only if the balance covers it."""

        if amount < 0:
            raise ValueError("Debit amount must not be negative")
        result = self._session.execute(
            update(Principal)
            .where(Principal.principal_id == principal_id, Principal.balance >= amount)
            .values(balance=Principal.balance - amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            if self.get(principal_id) is None:
                raise PrincipalNotFound(principal_id)
            raise InsufficientFunds(principal_id, amount)
        return self._refresh_balance(principal_id)

    def _refresh_balance(self, principal_id: int) -> int:
        balance = self.current_balance(principal_id)
        cached = self._session.identity_map.get(self._session.identity_key(Principal, principal_id))
        if cached is not None:
            self._session.expire(cached, ["balance"])
        return balance


__all__ = ["PrincipalRepository"]
