import json
from typing import Literal, Union

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _parse_cors_origins(v: Union[str, list[str]]) -> list[str]:
    """Parse CORS_ORIGINS from env: JSON array, comma-separated, or single URL."""
    if isinstance(v, list):
        return [str(x).strip() for x in v if x]
    s = str(v).strip()
    if not s:
        return []
    if s.startswith("["):
        try:
            return [x.strip() for x in json.loads(s) if x]
        except json.JSONDecodeError:
            pass
    return [x.strip() for x in s.split(",") if x.strip()]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Durable storage ───────────────────────────────────────────────────────
    # memory: session-only, file: one file per key, sql: storage_entries table
    STORAGE_BACKEND: Literal["memory", "file", "sql"] = "file"
    STORAGE_DIR: str = ".watchlist_data"
    DATABASE_URL: str = "sqlite:///./watchlist.db"
    # Same ceiling browsers put on localStorage. 0 disables the quota.
    STORAGE_QUOTA_BYTES: int = 5 * 1024 * 1024

    # ── Watchlist ─────────────────────────────────────────────────────────────
    # Namespaced so it never collides with another feature's key.
    WATCHLIST_STORAGE_KEY: str = "tmovies_watchlist"

    # ── CORS ──────────────────────────────────────────────────────────────────
    # Env: comma-separated (https://a.com,https://b.com) or JSON ["https://a.com"]
    CORS_ORIGINS: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
    ]

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors(cls, v: object) -> list[str]:
        if v is None:
            return []
        return _parse_cors_origins(v)

    # ── App ───────────────────────────────────────────────────────────────────
    APP_ENV: str = "development"  # development | production
    ENABLE_DOCS: bool = True
    LOG_LEVEL: str = "INFO"

    @property
    def is_dev(self) -> bool:
        return self.APP_ENV == "development"


settings = Settings()
