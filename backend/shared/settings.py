"""Sync layer configuration via environment variables."""

from datetime import timedelta

from pydantic import Field
from pydantic_settings import BaseSettings


class SyncSettings(BaseSettings):
    model_config = {"env_prefix": "SYNC_"}

    # Snapshot TTLs
    cache_timeout_seconds: float = Field(default=30.0, ge=0)
    group_refresh_seconds: float = Field(default=30.0, ge=0)

    # Debounce windows; 0 still coalesces callers arriving in the same loop tick
    player_debounce_seconds: float = Field(default=2.0, ge=0)
    fetch_debounce_seconds: float = Field(default=0.0, ge=0)
    signal_debounce_seconds: float = Field(default=2.0, ge=0)

    group_window_days: int = Field(default=30, ge=1)

    session_ttl_hours: float = Field(default=24.0, gt=0)
    session_code_length: int = Field(default=6, ge=4, le=12)
    session_code_attempts: int = Field(default=10, ge=1)
    session_sweep_seconds: float = Field(default=0.0, ge=0)  # 0 disables the sweeper

    log_dir: str | None = None

    @property
    def cache_timeout(self) -> timedelta:
        return timedelta(seconds=self.cache_timeout_seconds)

    @property
    def group_refresh(self) -> timedelta:
        return timedelta(seconds=self.group_refresh_seconds)

    @property
    def group_window(self) -> timedelta:
        return timedelta(days=self.group_window_days)

    @property
    def session_ttl(self) -> timedelta:
        return timedelta(hours=self.session_ttl_hours)
