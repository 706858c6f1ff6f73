from functools import lru_cache
from typing import Any
from urllib.parse import urlparse, urlunparse

from pydantic import AnyUrl, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _ensure_sqlalchemy_postgres_scheme(value: str) -> str:
    if not value.lower().startswith("postgres"):
        return value

    parsed = urlparse(value)
    scheme = parsed.scheme.lower()

    if scheme == "postgres":
        scheme = "postgresql"

    if scheme == "postgresql":
        scheme = "postgresql+psycopg"

    if scheme not in {"postgresql+psycopg", "postgresql+asyncpg"}:
        scheme = "postgresql+psycopg"

    return urlunparse(parsed._replace(scheme=scheme))


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    debug: bool = Field(False, description="Enable SQL echo and FastAPI debug mode")
    environment: str = Field(
        default="development",
        description="Runtime environment (development|staging|production)",
    )
    database_url: AnyUrl | str = Field(
        default="sqlite:///./data/wagering.db",
        description="SQLAlchemy compatible database URL",
    )
    default_deposit_commission_bps: int = Field(
        default=1000,
        description="Deposit commission applied to regional operators without a configured rule (basis points)",
        ge=0,
        le=10000,
    )
    exposure_medium_risk_threshold: int = Field(
        default=20000,
        description="Worst-case market liability (minor units) above which a market is flagged medium risk",
        ge=0,
    )
    exposure_high_risk_threshold: int = Field(
        default=50000,
        description="Worst-case market liability (minor units) above which a market is flagged high risk",
        ge=0,
    )
    settlement_retry_attempts: int = Field(
        default=3,
        description="Number of attempts for a single wager settlement when the store reports a transient error",
        ge=1,
    )
    settlement_retry_backoff_seconds: list[float] | tuple[float, ...] | str = Field(
        default_factory=lambda: [0.05, 0.1, 0.2],
        description="Comma-separated list or array of backoff delays (seconds) between settlement retry attempts",
    )

    @field_validator("database_url", mode="before")
    @classmethod
    def _normalize_postgres_urls(cls, value: Any) -> Any:
        if value is None or not isinstance(value, str):
            return value

        if value.startswith("postgresql+psycopg://") or value.startswith(
            "postgresql+asyncpg://"
        ):
            return value

        normalized = value
        if normalized.startswith("postgres://"):
            normalized = "postgresql://" + normalized[len("postgres://") :]

        return normalized

    @field_validator("settlement_retry_backoff_seconds", mode="before")
    @classmethod
    def _parse_retry_backoff(cls, value: Any) -> list[float]:
        if value in (None, "", []):
            return [0.05, 0.1, 0.2]
        if isinstance(value, str):
            tokens = [token.strip() for token in value.split(",") if token.strip()]
            if not tokens:
                raise ValueError("SETTLEMENT_RETRY_BACKOFF_SECONDS must contain at least one value")
            value = tokens
        if isinstance(value, (list, tuple)):
            backoff: list[float] = []
            for item in value:
                try:
                    delay = float(item)
                except (TypeError, ValueError) as exc:
                    raise ValueError("SETTLEMENT_RETRY_BACKOFF_SECONDS entries must be numeric") from exc
                if delay <= 0:
                    raise ValueError("SETTLEMENT_RETRY_BACKOFF_SECONDS entries must be positive")
                backoff.append(delay)
            if not backoff:
                raise ValueError("SETTLEMENT_RETRY_BACKOFF_SECONDS must contain at least one value")
            return backoff
        raise ValueError(
            "SETTLEMENT_RETRY_BACKOFF_SECONDS must be provided as a comma-separated string or list of numbers"
        )

    @model_validator(mode="after")
    def _check_risk_thresholds(self) -> "Settings":
        if self.exposure_high_risk_threshold < self.exposure_medium_risk_threshold:
            raise ValueError(
                "EXPOSURE_HIGH_RISK_THRESHOLD must be greater than or equal to EXPOSURE_MEDIUM_RISK_THRESHOLD"
            )
        return self

    @property
    def resolved_database_url(self) -> str:
        return _ensure_sqlalchemy_postgres_scheme(str(self.database_url))

    @property
    def retry_backoff_schedule(self) -> tuple[float, ...]:
        sequence = tuple(float(value) for value in self.settlement_retry_backoff_seconds)
        if not sequence:
            return (0.05,)
        return sequence


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
