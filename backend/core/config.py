"""Application settings loaded from the environment."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_env: str = "development"
    database_url: str = "sqlite+aiosqlite:///./socialfeed.db"
    database_echo: bool = False
    # Seconds a SQLite connection waits on a held write lock before failing.
    sqlite_busy_timeout_seconds: float = Field(default=30.0, gt=0)
    cors_allowed_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:5173"]
    )
    log_level: str = "INFO"


settings = Settings()
