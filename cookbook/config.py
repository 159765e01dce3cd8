from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Cookbook settings, read from COOKBOOK_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="COOKBOOK_", env_file=".env", extra="ignore"
    )

    database_url: str = "sqlite:///cookbook.db"
    echo_sql: bool = False

    # account that owns recipes created by an import run
    admin_email: str = "admin@changcookbook.com"
    admin_name: str = "Chang Cookbook Admin"
    # bearer token for /api/admin routes; empty disables them
    admin_token: str = ""

    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()
