"""Pure wagering domain: vocabulary, errors, odds arithmetic, matching rules."""

from .errors import (
    ConfigurationMissing,
    InsufficientFunds,
    InvalidMarketResult,
    InvalidMarketState,
    MalformedPrediction,
    MarketNotFound,
    PrincipalNotFound,
    TransferNotPermitted,
    WagerNotFound,
    WageringError,
)
from .mechanics import choice_key, classify, is_valid_result
from .models import (
    DEPOSIT_CATEGORY,
    LedgerEntryKind,
    MarketStatus,
    Mechanic,
    PrincipalTier,
    TransferKind,
    WagerOutcome,
)
from .odds import ODDS_SCALE, apply_rate, compute_payout, nominal_multiplier, scale_multiplier

__all__ = [
    "DEPOSIT_CATEGORY",
    "ODDS_SCALE",
    "ConfigurationMissing",
    "InsufficientFunds",
    "InvalidMarketResult",
    "InvalidMarketState",
    "LedgerEntryKind",
    "MalformedPrediction",
    "MarketNotFound",
    "MarketStatus",
    "Mechanic",
    "PrincipalNotFound",
    "PrincipalTier",
    "TransferKind",
    "TransferNotPermitted",
    "WagerNotFound",
    "WagerOutcome",
    "WageringError",
    "apply_rate",
    "choice_key",
    "classify",
    "compute_payout",
    "is_valid_result",
    "nominal_multiplier",
    "scale_multiplier",
]
