from functools import lru_cache
from typing import Any, List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_CORS = ["http://localhost:3000", "http://localhost:5173"]


def _parse_cors_origins(v: Any) -> List[str]:
    try:
        if v is None or v == "":
            return _DEFAULT_CORS.copy()
        if isinstance(v, list):
            return [x for x in v if isinstance(x, str) and x.strip()]
        s = str(v).strip()
        if not s:
            return _DEFAULT_CORS.copy()
        if s.startswith("["):
            import json
            out = json.loads(s)
            return [x for x in out if isinstance(x, str) and x.strip()] or _DEFAULT_CORS.copy()
        return [x.strip() for x in s.split(",") if x.strip()] or _DEFAULT_CORS.copy()
    except Exception:
        return _DEFAULT_CORS.copy()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    env: str = Field(default="development", description="ENV")
    debug: bool = Field(default=False, description="DEBUG")

    # MongoDB
    mongodb_uri: str = Field(default="mongodb://localhost:27017", alias="MONGODB_URI")
    mongodb_db_name: str = Field(default="dontskip", alias="MONGODB_DB_NAME")
    mongodb_timeout_ms: int = Field(default=5000, alias="MONGODB_TIMEOUT_MS")

    # Ledger store: "mongo", or "memory" for single-process dev and tests
    ledger_store_backend: str = Field(default="mongo", alias="LEDGER_STORE_BACKEND")

    # Redis (empty string disables the balance cache)
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")

    # Sentry
    sentry_dsn: str | None = Field(default=None, alias="SENTRY_DSN")

    # CORS: env as string, exposed as list
    cors_origins_raw: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        alias="CORS_ORIGINS",
        description="Comma-separated or JSON list",
    )

    @property
    def cors_origins(self) -> List[str]:
        return _parse_cors_origins(getattr(self, "cors_origins_raw", None))

    # Ledger
    ledger_timezone: str = Field(default="UTC", alias="LEDGER_TIMEZONE")
    credit_cache_ttl_seconds: int = Field(default=300, alias="CREDIT_CACHE_TTL_SECONDS")
    cache_timeout_seconds: float = Field(default=0.5, alias="CACHE_TIMEOUT_SECONDS")
    ledger_lock_ttl_seconds: float = Field(default=10.0, alias="LEDGER_LOCK_TTL_SECONDS")
    ledger_lock_timeout_seconds: float = Field(default=5.0, alias="LEDGER_LOCK_TIMEOUT_SECONDS")
    ledger_lock_poll_seconds: float = Field(default=0.05, alias="LEDGER_LOCK_POLL_SECONDS")
    emergency_max_minutes_per_call: int = Field(default=60, alias="EMERGENCY_MAX_MINUTES_PER_CALL")
    spend_max_minutes_per_call: int = Field(default=480, alias="SPEND_MAX_MINUTES_PER_CALL")
    expiration_batch_size: int = Field(default=200, alias="EXPIRATION_BATCH_SIZE")


@lru_cache
def get_settings() -> Settings:
    return Settings()
