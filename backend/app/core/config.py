from functools import lru_cache
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from pydantic import AnyUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_TOKEN_IDS: dict[str, str] = {
    "WIF": "dogwifcoin",
    "SOL": "solana",
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "BONK": "bonk",
    "PEPE": "pepe",
    "DOGE": "dogecoin",
    "SHIB": "shiba-inu",
    "PUMP": "pump-fun",
    "TROLL": "troll",
}

DEFAULT_FALLBACK_PRICES: dict[str, float] = {
    "WIF": 2.45,
    "SOL": 185.50,
    "BTC": 65000.00,
    "ETH": 3200.00,
    "PEPE": 0.00001234,
    "PUMP": 0.0089,
    "SHIB": 0.0000234,
    "BONK": 0.0000456,
}


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

    query_params = dict(parse_qsl(parsed.query, keep_blank_values=True))
    query_params.setdefault("sslmode", "require")
    query_params.setdefault("target_session_attrs", "read-write")
    new_query = urlencode(query_params, doseq=True)

    normalized = urlunparse(
        parsed._replace(
            scheme=scheme,
            query=new_query,
        )
    )
    return normalized


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    debug: bool = Field(False, description="Enable FastAPI debug mode")
    environment: str = Field(
        default="development",
        description="Runtime environment (development|staging|production)",
    )
    database_url: AnyUrl | str = Field(
        default="sqlite:///../data/market_resolver.db",
        description="SQLAlchemy compatible database URL",
    )
    supabase_db_url: AnyUrl | str | None = Field(
        default=None,
        description="Supabase pooled Postgres connection string for production runs",
    )
    cron_secret: str | None = Field(
        default=None,
        description="Bearer token required by the batch resolution endpoint (unset disables the check)",
    )
    coingecko_base_url: AnyUrl = Field(
        default="https://api.coingecko.com/api/v3",
        description="Base URL for the public CoinGecko API",
    )
    coingecko_pro_base_url: AnyUrl = Field(
        default="https://pro-api.coingecko.com/api/v3",
        description="Base URL for the CoinGecko Pro API",
    )
    coingecko_api_key: str | None = Field(
        default=None,
        description="CoinGecko Pro API key; when unset only the public API is used",
    )
    coingecko_use_free_fallback: bool = Field(
        default=True,
        description="Retry against the public API when the Pro API fails",
    )
    coingecko_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout applied to every price-data provider request",
        gt=0,
    )
    token_coingecko_ids: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_TOKEN_IDS),
        description="Ordered ticker allowlist mapped to CoinGecko coin identifiers",
    )
    fallback_token_prices: dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_FALLBACK_PRICES),
        description="Last-known USD prices used when the provider is unavailable",
    )
    market_data_cache_ttl_seconds: float = Field(
        default=60.0,
        description="Lifetime of cached current-price responses",
        ge=0,
    )
    market_data_cache_max_entries: int = Field(
        default=256,
        description="Maximum number of cached token snapshots",
        ge=1,
    )
    market_data_history_window_minutes: int = Field(
        default=24 * 60,
        description="Length of the price path fetched before a market's closing date",
        ge=1,
    )
    market_data_history_interval_seconds: int = Field(
        default=300,
        description="Spacing between historical samples (60-300 seconds)",
        ge=60,
        le=300,
    )
    resolution_confirmation_seconds: int = Field(
        default=120,
        description="How long a price condition must hold before it counts as reached",
        ge=0,
    )
    resolution_resistance_samples: int = Field(
        default=2,
        description="Consecutive samples above a level required for a resistance break",
        ge=1,
    )
    resolution_support_hold_ratio: float = Field(
        default=0.8,
        description="Share of samples that must stay above a support level",
        gt=0,
        le=1,
    )
    resolution_momentum_window_minutes: int = Field(
        default=30,
        description="Trailing window used to measure momentum at close",
        ge=1,
    )
    resolution_low_confidence_threshold: float = Field(
        default=0.5,
        description="Confidence below which a resolved market is flagged for review",
        ge=0,
        le=1,
    )
    resolution_fallback_confidence: float = Field(
        default=0.6,
        description="Confidence recorded for fallback resolutions",
        ge=0,
        le=1,
    )
    resolution_batch_limit: int | None = Field(
        default=None,
        description="Optional cap on markets resolved per scheduler invocation",
        ge=1,
    )

    @field_validator("database_url", "supabase_db_url", mode="before")
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

    @field_validator("supabase_db_url")
    @classmethod
    def _require_postgres_scheme(cls, value: Any) -> Any:
        if value is None:
            return value
        url_str = str(value)
        scheme = url_str.split(":", 1)[0].lower()
        valid_schemes = {
            "postgres",
            "postgresql",
            "postgresql+psycopg",
            "postgresql+asyncpg",
        }
        if scheme not in valid_schemes:
            raise ValueError(
                "SUPABASE_DB_URL must be a PostgreSQL connection string (e.g. postgresql://...)."
            )
        return value

    @field_validator("token_coingecko_ids", mode="after")
    @classmethod
    def _normalize_token_ids(cls, value: dict[str, str]) -> dict[str, str]:
        normalized: dict[str, str] = {}
        for symbol, coin_id in value.items():
            ticker = str(symbol).strip().upper()
            if not ticker or not str(coin_id).strip():
                raise ValueError("TOKEN_COINGECKO_IDS entries must map a ticker to a coin id")
            normalized[ticker] = str(coin_id).strip()
        if not normalized:
            raise ValueError("TOKEN_COINGECKO_IDS must contain at least one ticker")
        return normalized

    @field_validator("fallback_token_prices", mode="after")
    @classmethod
    def _validate_fallback_prices(cls, value: dict[str, float]) -> dict[str, float]:
        prices: dict[str, float] = {}
        for symbol, price in value.items():
            if price <= 0:
                raise ValueError("FALLBACK_TOKEN_PRICES entries must be positive")
            prices[str(symbol).strip().upper()] = float(price)
        return prices

    @property
    def resolved_database_url(self) -> str:
        environment = self.environment.lower()
        if environment == "production":
            if not self.supabase_db_url:
                raise ValueError(
                    "SUPABASE_DB_URL must be set when ENVIRONMENT=production"
                )
            return _ensure_sqlalchemy_postgres_scheme(str(self.supabase_db_url))
        return _ensure_sqlalchemy_postgres_scheme(str(self.database_url))

    @property
    def token_allowlist(self) -> tuple[str, ...]:
        return tuple(self.token_coingecko_ids)


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
