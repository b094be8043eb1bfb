from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Catalog Sync API"
    env: str = "dev"
    database_url: str = Field(default="sqlite:///./catalog_sync.db")
    redis_url: str = Field(default="redis://localhost:6379/0")
    cache_enabled: bool = True
    status_cache_ttl_seconds: int = Field(default=15, ge=1)
    max_upload_bytes: int = Field(default=10 * 1024 * 1024, ge=1)
    scheduler_enabled: bool = False
    scheduler_refresh_seconds: float = Field(default=60.0, gt=0)
    cache_schema_version: str = "1"

    model_config = SettingsConfigDict(env_file=".env", env_prefix="CATALOG_SYNC_", extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()
