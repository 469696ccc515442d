"""Runtime configuration.

All settings can be overridden with ``CHATLINE_``-prefixed environment
variables or a local ``.env`` file, e.g. ``CHATLINE_MONGODB_URL=mongodb://db:27017``.
"""
from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):

    model_config = SettingsConfigDict(
        env_prefix="CHATLINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    mongodb_url: str = "mongodb://localhost:27017"
    mongodb_db: str = "chatline"

    jwt_secret_key: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 7 * 24 * 60

    media_dir: str = "./uploads"
    max_upload_bytes: int = 100 * 1024 * 1024

    # 0 keeps typing entries until an explicit stop or disconnect
    typing_timeout_seconds: float = Field(default=0, ge=0)

    log_level: str = "INFO"
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])


@lru_cache
def get_settings() -> Settings:
    return Settings()
