"""
Centralised application settings loaded from environment / .env file.
"""
from __future__ import annotations

from pathlib import Path
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

# Load .env from project root (two levels up from this file)
_ENV_PATH = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(_ENV_PATH)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # ── Local data source ───────────────────────────────
    database_url: str = "sqlite:///tracklens.db"

    # ── Collaborators ────────────────────────────────────
    query_backend: str = "local"  # local | http
    tracker_api_url: str = "http://localhost:3001"
    tracker_api_token: str = ""
    http_timeout_seconds: float = 30.0

    # ── Snapshots ────────────────────────────────────────
    snapshot_max_count: int = 100
    snapshot_max_days: int = 30

    # ── App ──────────────────────────────────────────────
    api_port: int = 8000
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    return Settings()
