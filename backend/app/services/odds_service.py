"""Single entry point for resolving the multiplier a bettor is paid at."""

from __future__ import annotations

from loguru import logger
from sqlalchemy.orm import Session

from app.domain import ConfigurationMissing, Mechanic, PrincipalTier
from app.repositories import PrincipalRepository, RuleRepository


class OddsResolutionService:
    """Resolve scaled multipliers with regional-operator overrides.

    A rule scoped to the bettor's regional operator always wins over the
    platform default for the same mechanic. When neither exists the lookup
    fails with :class:`ConfigurationMissing`; there is no hardcoded fallback.
    Settlement and exposure both call :meth:`resolve_odds`, so a wager is
    priced identically by either path.
    """

    def __init__(self, session: Session) -> None:
        self._session = session
        self._principals = PrincipalRepository(session)
        self._rules = RuleRepository(session)

    def regional_operator_for(self, bettor_id: int) -> int | None:
        bettor = self._principals.require(bettor_id)
        if bettor.parent_id is None:
            return None
        parent = self._principals.get(bettor.parent_id)
        if parent is None or parent.tier != PrincipalTier.REGIONAL_OPERATOR.value:
            return None
        return parent.principal_id

    def resolve_odds(self, bettor_id: int, mechanic: Mechanic | str) -> int:
        mechanic_value = Mechanic.parse(mechanic)
        regional_operator_id = self.regional_operator_for(bettor_id)

        if regional_operator_id is not None:
            rule = self._rules.find_odds_rule(mechanic_value, regional_operator_id)
            if rule is not None:
                return int(rule.multiplier)

        rule = self._rules.find_odds_rule(mechanic_value, None)
        if rule is not None:
            return int(rule.multiplier)

        logger.warning(
            "No odds rule for mechanic {} (bettor {}, regional operator {})",
            mechanic_value.value,
            bettor_id,
            regional_operator_id,
        )
        raise ConfigurationMissing(bettor_id, mechanic_value.value, regional_operator_id)


class MemoizedOddsResolver:
    """Per-report cache in front of :class:`OddsResolutionService`.

    Lives only as long as one aggregation call so configuration changes are
    picked up by the next report.
    """

    def __init__(self, service: OddsResolutionService) -> None:
        self._service = service
        self._cache: dict[tuple[int, Mechanic], int | ConfigurationMissing] = {}

    def resolve_odds(self, bettor_id: int, mechanic: Mechanic | str) -> int:
        key = (bettor_id, Mechanic.parse(mechanic))
        if key not in self._cache:
            try:
                self._cache[key] = self._service.resolve_odds(bettor_id, key[1])
            except ConfigurationMissing as exc:
                self._cache[key] = exc
        cached = self._cache[key]
        if isinstance(cached, ConfigurationMissing):
            raise cached
        return cached


__all__ = ["MemoizedOddsResolver", "OddsResolutionService"]
