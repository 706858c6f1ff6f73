"""Typed domain vocabulary shared by persistence, services, and APIs."""

from __future__ import annotations

from enum import Enum


class PrincipalTier(str, Enum):
    OPERATOR = "operator"
    REGIONAL_OPERATOR = "regional-operator"
    BETTOR = "bettor"


class MarketStatus(str, Enum):
    WAITING = "waiting"
    OPEN = "open"
    CLOSED = "closed"
    RESULTED = "resulted"

    @property
    def rank(self) -> int:
        """Position in the ``waiting -> open -> closed -> resulted`` lifecycle."""

        return _MARKET_STATUS_ORDER.index(self)


_MARKET_STATUS_ORDER = (
    MarketStatus.WAITING,
    MarketStatus.OPEN,
    MarketStatus.CLOSED,
    MarketStatus.RESULTED,
)


class Mechanic(str, Enum):
    EXACT_PAIR = "exact_pair"
    POSITIONAL_DIGIT = "positional_digit"
    CROSSING = "crossing"
    PARITY = "parity"

    @classmethod
    def parse(cls, value: "str | Mechanic") -> "Mechanic":
        """Accept canonical tags and the legacy game-type names."""

        if isinstance(value, Mechanic):
            return value
        key = str(value).strip().lower()
        try:
            return cls(key)
        except ValueError:
            pass
        alias = _MECHANIC_ALIASES.get(key)
        if alias is None:
            raise ValueError(f"Unknown mechanic: {value!r}")
        return alias


_MECHANIC_ALIASES = {
    "jodi": Mechanic.EXACT_PAIR,
    "satamatka_jodi": Mechanic.EXACT_PAIR,
    "harf": Mechanic.POSITIONAL_DIGIT,
    "satamatka_harf": Mechanic.POSITIONAL_DIGIT,
    "satamatka_crossing": Mechanic.CROSSING,
    "odd_even": Mechanic.PARITY,
    "satamatka_odd_even": Mechanic.PARITY,
}


class WagerOutcome(str, Enum):
    PENDING = "pending"
    WIN = "win"
    LOSS = "loss"


class TransferKind(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    SELF_FUNDING = "self_funding"


class LedgerEntryKind(str, Enum):
    OPENING = "opening"
    PAYOUT = "payout"
    TRANSFER_DEBIT = "transfer_debit"
    TRANSFER_CREDIT = "transfer_credit"
    EXTERNAL_SOURCE = "external_source"


DEPOSIT_CATEGORY = "deposit"
