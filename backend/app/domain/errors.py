"""Error taxonomy raised by the settlement and exposure engine."""

from __future__ import annotations


class WageringError(Exception):
    """Base class for every error the engine reports to its callers."""

    status_code = 400


class ConfigurationMissing(WageringError):
    """No odds rule can be resolved for a bettor and mechanic."""

    status_code = 422

    def __init__(self, bettor_id: int, mechanic: str, regional_operator_id: int | None = None) -> None:
        self.bettor_id = bettor_id
        self.mechanic = mechanic
        self.regional_operator_id = regional_operator_id
        scope = (
            f"regional operator {regional_operator_id} or platform default"
            if regional_operator_id is not None
            else "platform default"
        )
        super().__init__(f"No odds rule for mechanic {mechanic!r} ({scope}) applies to bettor {bettor_id}")


class InvalidMarketState(WageringError):
    status_code = 409


class InvalidMarketResult(WageringError):
    status_code = 422


class InsufficientFunds(WageringError):
    status_code = 409

    def __init__(self, principal_id: int, required: int) -> None:
        self.principal_id = principal_id
        self.required = required
        super().__init__(f"Principal {principal_id} cannot cover a debit of {required}")


class TransferNotPermitted(WageringError):
    status_code = 403


class PrincipalNotFound(WageringError):
    status_code = 404

    def __init__(self, principal_id: int) -> None:
        self.principal_id = principal_id
        super().__init__(f"Principal {principal_id} not found")


class MarketNotFound(WageringError):
    status_code = 404

    def __init__(self, market_id: int) -> None:
        self.market_id = market_id
        super().__init__(f"Market {market_id} not found")


class WagerNotFound(WageringError):
    status_code = 404

    def __init__(self, wager_id: int) -> None:
        self.wager_id = wager_id
        super().__init__(f"Wager {wager_id} not found")


class MalformedPrediction(ValueError):
    """Raised by prediction parsers; classification turns it into a loss."""


__all__ = [
    "ConfigurationMissing",
    "InsufficientFunds",
    "InvalidMarketResult",
    "InvalidMarketState",
    "MalformedPrediction",
    "MarketNotFound",
    "PrincipalNotFound",
    "TransferNotPermitted",
    "WagerNotFound",
    "WageringError",
]
