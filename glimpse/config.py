"""Glimpse configuration via pydantic-settings."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class GlimpseSettings(BaseSettings):
    environment: str = "development"
    database_url: str = "sqlite+aiosqlite:///glimpse.db"
    echo_sql: bool = False
    app_title: str = "Weekly Glimpse"
    log_level: str = "INFO"

    auth_secret: str = "dev-insecure-secret"
    auth_cookie_name: str = "glimpse_session"
    auth_cookie_secure: bool = False
    auth_session_ttl_seconds: int = 60 * 60 * 24 * 30

    # Failed-login throttling, keyed by client address + username
    login_rate_limit_window_seconds: int = 300
    login_rate_limit_max_attempts: int = 5
    login_rate_limit_block_seconds: int = 300

    realtime_calendar_room: str = "calendar"

    reminders_enabled: bool = True
    reminder_lead_minutes: int = 30
    reminder_check_interval_seconds: float = 60.0

    # Client side (guest mode + sync)
    local_store_url: str = "sqlite+aiosqlite:///glimpse-local.db"
    api_base_url: str = "http://localhost:8000"
    sync_window_months: int = 6

    model_config = {"env_prefix": "GLIMPSE_", "env_file": ".env", "extra": "ignore"}

    @property
    def is_production(self) -> bool:
        return self.environment.strip().lower() in {"prod", "production"}

    @property
    def is_sqlite(self) -> bool:
        return "sqlite" in self.database_url


settings = GlimpseSettings()
