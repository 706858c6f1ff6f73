"""Win/loss classification for the four wager mechanics.

``classify`` is the only entry point settlement and exposure code use to
decide an outcome. It never raises for bad input: a prediction or result that
cannot be parsed resolves to a loss.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from itertools import permutations

from .errors import MalformedPrediction
from .models import Mechanic, WagerOutcome

_RESULT_PATTERN = re.compile(r"^[0-9]{2}$")
_POSITIONAL_PATTERN = re.compile(
    r"^(?:(?P<marker>first|second|[ablr])[:\-]?)?(?P<digit>[0-9])$", re.IGNORECASE
)


class Position(str, Enum):
    FIRST = "first"
    SECOND = "second"
    EITHER = "either"


_POSITION_MARKERS = {
    "a": Position.FIRST,
    "l": Position.FIRST,
    "first": Position.FIRST,
    "b": Position.SECOND,
    "r": Position.SECOND,
    "second": Position.SECOND,
}


@dataclass(frozen=True, slots=True)
class PositionalPrediction:
    position: Position
    digit: str


def is_valid_result(value: object) -> bool:
    return isinstance(value, str) and bool(_RESULT_PATTERN.match(value))


def parse_exact_pair(prediction: str) -> str:
    candidate = prediction.strip() if isinstance(prediction, str) else ""
    if not _RESULT_PATTERN.match(candidate):
        raise MalformedPrediction(f"Exact-pair prediction must be two digits, got {prediction!r}")
    return candidate


def parse_positional(prediction: str) -> PositionalPrediction:
    candidate = prediction.strip() if isinstance(prediction, str) else ""
    match = _POSITIONAL_PATTERN.match(candidate)
    if not match:
        raise MalformedPrediction(f"Positional prediction not understood: {prediction!r}")
    marker = match.group("marker")
    position = _POSITION_MARKERS[marker.lower()] if marker else Position.EITHER
    return PositionalPrediction(position=position, digit=match.group("digit"))


def parse_crossing(prediction: str | Iterable[object]) -> frozenset[str]:
    if isinstance(prediction, str):
        tokens = [token.strip() for token in prediction.split(",")]
        if len(tokens) == 1 and len(tokens[0]) > 1:
            # "123" is the legacy unseparated form; only "1,2,3" is accepted.
            raise MalformedPrediction(
                f"Crossing prediction must be comma-separated digits, got {prediction!r}"
            )
    elif isinstance(prediction, Iterable):
        tokens = [str(token).strip() for token in prediction]
    else:
        raise MalformedPrediction(f"Crossing prediction not understood: {prediction!r}")

    if not tokens or any(len(token) != 1 or not token.isdigit() for token in tokens):
        raise MalformedPrediction(f"Crossing prediction must contain single digits, got {prediction!r}")
    digits = frozenset(tokens)
    if len(digits) != len(tokens):
        raise MalformedPrediction(f"Crossing prediction repeats a digit: {prediction!r}")
    return digits


def crossing_pairs(digits: Iterable[str]) -> frozenset[str]:
    """Every ordered pair of two distinct digits from the set."""

    return frozenset(first + second for first, second in permutations(sorted(set(digits)), 2))


def parse_parity(prediction: str) -> str:
    candidate = prediction.strip().lower() if isinstance(prediction, str) else ""
    if candidate not in {"odd", "even"}:
        raise MalformedPrediction(f"Parity prediction must be 'odd' or 'even', got {prediction!r}")
    return candidate


def encode_crossing(digits: Iterable[int | str]) -> str:
    return ",".join(sorted({str(digit) for digit in digits}))


def encode_positional(position: Position | str, digit: int | str) -> str:
    position = Position(position)
    if position is Position.EITHER:
        return str(digit)
    return f"{position.value}:{digit}"


def _matches(mechanic: Mechanic, prediction: str, result: str) -> bool:
    if mechanic is Mechanic.EXACT_PAIR:
        return parse_exact_pair(prediction) == result

    if mechanic is Mechanic.POSITIONAL_DIGIT:
        parsed = parse_positional(prediction)
        if parsed.position is Position.FIRST:
            return parsed.digit == result[0]
        if parsed.position is Position.SECOND:
            return parsed.digit == result[1]
        return parsed.digit in (result[0], result[1])

    if mechanic is Mechanic.CROSSING:
        return result in crossing_pairs(parse_crossing(prediction))

    if mechanic is Mechanic.PARITY:
        is_odd = int(result) % 2 == 1
        return parse_parity(prediction) == ("odd" if is_odd else "even")

    raise MalformedPrediction(f"Unsupported mechanic {mechanic!r}")


def classify(mechanic: Mechanic | str, prediction: str, market_result: str) -> WagerOutcome:
    """Decide whether a prediction wins against a closing result."""

    if not is_valid_result(market_result):
        return WagerOutcome.LOSS
    try:
        parsed_mechanic = Mechanic.parse(mechanic)
        won = _matches(parsed_mechanic, prediction, market_result)
    except (MalformedPrediction, ValueError):
        return WagerOutcome.LOSS
    return WagerOutcome.WIN if won else WagerOutcome.LOSS


def choice_key(mechanic: Mechanic | str, prediction: str) -> str | None:
    """Grouping key for exposure; ``None`` means the wager stands on its own."""

    try:
        if Mechanic.parse(mechanic) is Mechanic.PARITY:
            return parse_parity(prediction)
    except (MalformedPrediction, ValueError):
        return None
    return None


__all__ = [
    "Position",
    "PositionalPrediction",
    "choice_key",
    "classify",
    "crossing_pairs",
    "encode_crossing",
    "encode_positional",
    "is_valid_result",
    "parse_crossing",
    "parse_exact_pair",
    "parse_parity",
    "parse_positional",
]
