"""
siquan/config.py — Pydantic BaseSettings configuration
Every tunable of the blog backend lives here: database, Gmail OAuth,
login guard window, newsletter pacing and HTTP rate limits.
"""
from __future__ import annotations

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application ────────────────────────────────────────────────────────────
    environment: str = "development"
    log_level: str = "INFO"
    port: int = 8000
    site_name: str = "思圈blog"
    site_url: str = "http://localhost:3000"
    site_timezone: str = "Asia/Taipei"

    # ── Database ──────────────────────────────────────────────────────────────
    database_url: str = "sqlite:///./siquan.sqlite3"
    database_echo: bool = False

    # ── Authentication ────────────────────────────────────────────────────────
    cron_secret: str = ""
    auth_token_ttl_days: int = 30
    password_hash_rounds: int = 12

    # ── Gmail OAuth2 — refresh-token transport ────────────────────────────────
    gmail_user: str = ""
    gmail_client_id: str = ""
    gmail_client_secret: str = ""
    gmail_refresh_token: str = ""
    gmail_from_name: str = ""

    # ── Login guard ───────────────────────────────────────────────────────────
    login_window_minutes: int = 15
    login_max_failed_attempts: int = 5

    # ── Newsletter ────────────────────────────────────────────────────────────
    newsletter_send_delay_ms: int = 100
    newsletter_excerpt_chars: int = 200

    # ── HTTP rate limiting (slowapi) ──────────────────────────────────────────
    rate_limit_enabled: bool = True

    # ── Content limits ────────────────────────────────────────────────────────
    preview_text_chars: int = 150
    max_comment_chars: int = 5000
    max_message_chars: int = 4000
    group_message_page_size: int = 50

    @field_validator("environment")
    @classmethod
    def validate_env(cls, v: str) -> str:
        allowed = {"development", "production", "testing"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("site_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def from_name(self) -> str:
        return self.gmail_from_name or self.site_name

    @property
    def gmail_configured(self) -> bool:
        return all([
            self.gmail_user,
            self.gmail_client_id,
            self.gmail_client_secret,
            self.gmail_refresh_token,
        ])


@lru_cache()
def get_settings() -> Settings:
    """Return cached Settings instance. Use this everywhere."""
    return Settings()
