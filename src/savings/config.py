"""Configuration system using pydantic-settings with environment variable loading."""

from decimal import Decimal
from typing import Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SERIES_CODE = "12"  # BCB SGS series 12 = daily CDI
DEFAULT_TIMEOUT_MS = 7000
DEFAULT_CACHE_TTL_MINUTES = 180


class CdiSettings(BaseSettings):
    """Benchmark (CDI) rate source and cache settings.

    The series code is also read from BCB_CDI_SERIES_CODE so existing
    deployments keep working without renaming their environment.
    """

    model_config = SettingsConfigDict(env_prefix="CDI_", populate_by_name=True)

    series_code: str = Field(
        default=DEFAULT_SERIES_CODE,
        validation_alias=AliasChoices("CDI_SERIES_CODE", "BCB_CDI_SERIES_CODE"),
    )
    base_url: str = "https://api.bcb.gov.br/dados/serie"
    request_timeout_ms: int = DEFAULT_TIMEOUT_MS
    cache_ttl_minutes: Decimal = Decimal(DEFAULT_CACHE_TTL_MINUTES)
    annual_fallback_rate: Decimal | None = None  # percentage, e.g. 10.65

    @field_validator("series_code")
    @classmethod
    def _strip_series_code(cls, value: str) -> str:
        return value.strip() or DEFAULT_SERIES_CODE

    @field_validator("request_timeout_ms")
    @classmethod
    def _positive_timeout(cls, value: int) -> int:
        return value if value > 0 else DEFAULT_TIMEOUT_MS

    @field_validator("cache_ttl_minutes")
    @classmethod
    def _positive_ttl(cls, value: Decimal) -> Decimal:
        return value if value > 0 else Decimal(DEFAULT_CACHE_TTL_MINUTES)

    @field_validator("annual_fallback_rate")
    @classmethod
    def _positive_fallback(cls, value: Decimal | None) -> Decimal | None:
        # Zero or negative means "no fallback configured"
        if value is None or value <= 0:
            return None
        return value

    @property
    def request_timeout_seconds(self) -> float:
        return self.request_timeout_ms / 1000

    @property
    def cache_ttl_seconds(self) -> float:
        return float(self.cache_ttl_minutes * 60)


class StorageSettings(BaseSettings):
    """Box and ledger persistence settings."""

    model_config = SettingsConfigDict(env_prefix="STORAGE_")

    backend: Literal["memory", "sqlite"] = "memory"
    db_path: str = "data/savings.db"


class ApiSettings(BaseSettings):
    """HTTP API server configuration."""

    model_config = SettingsConfigDict(env_prefix="API_")

    host: str = "0.0.0.0"
    port: int = 8080


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    log_level: str = "INFO"
    cdi: CdiSettings = CdiSettings()
    storage: StorageSettings = StorageSettings()
    api: ApiSettings = ApiSettings()
