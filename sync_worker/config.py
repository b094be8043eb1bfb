from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class WorkerSettings(BaseSettings):
    database_url: str = "sqlite:///./catalog_sync.db"
    log_level: str = "INFO"

    max_run_seconds: float = Field(default=300.0, gt=0)
    worker_pool_size: int = Field(default=4, ge=1)
    retry_max_attempts: int = Field(default=3, ge=1)
    retry_backoff_seconds: float = Field(default=1.0, ge=0)
    source_timeout_seconds: float = Field(default=30.0, gt=0)
    max_pages: int = Field(default=100, ge=1)
    history_retention: int = Field(default=100, ge=1)

    # credential_ref -> secret, e.g. CATALOG_SYNC_SOURCE_CREDENTIALS='{"acme-api": "tok_123"}'
    source_credentials: dict[str, str] = Field(default_factory=dict)

    model_config = SettingsConfigDict(env_file=".env", env_prefix="CATALOG_SYNC_", extra="ignore")


@lru_cache
def get_settings() -> WorkerSettings:
    return WorkerSettings()
