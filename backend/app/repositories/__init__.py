"""Repository abstractions for database interactions."""

from .ledger_repository import LedgerRepository
from .market_repository import MarketRepository
from .principal_repository import PrincipalRepository
from .rule_repository import RuleRepository
from .wager_repository import WagerRepository

__all__ = [
    "LedgerRepository",
    "MarketRepository",
    "PrincipalRepository",
    "RuleRepository",
    "WagerRepository",
]
