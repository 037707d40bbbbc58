from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Coordinator and client settings, read from SHAREDCACHE_* variables or .env."""

    model_config = SettingsConfigDict(
        env_prefix="SHAREDCACHE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    default_timeout_ms: int = Field(default=3_000, ge=0)
    timeout_reason: str = "SharedCache get function timeout"
    default_cache_name: str = "default"
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()
