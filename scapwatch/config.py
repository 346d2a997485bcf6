"""Centralized configuration loaded from environment variables."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application-wide settings sourced from .env / environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── General ──────────────────────────────────────────────────────
    scapwatch_env: str = "development"
    scapwatch_log_level: str = "INFO"

    # ── Scanning Engine ──────────────────────────────────────────────
    host_profile: str = "auto"
    scan_profile: str = "standard"
    oscap_binary: str = "oscap"
    remediation_timeout: float = Field(default=1800, ge=0)
    remediation_ok_exit_codes: str = "0"  # oscap exits 2 when rules still fail after remediation
    report_dir: str = "."

    # ── Trigger Sources ──────────────────────────────────────────────
    poll_interval_seconds: float = Field(default=10, gt=0)
    watch_debounce_ms: int = Field(default=1600, ge=0)
    coalesce_triggers: bool = True
    source_retry_delay: float = Field(default=30, ge=0)

    # ── Evidence Repository ──────────────────────────────────────────
    git_binary: str = "git"
    git_remote: str = "origin"
    git_timeout: float = Field(default=120, ge=0)

    # ── Shutdown ─────────────────────────────────────────────────────
    shutdown_grace_seconds: float = Field(default=10, gt=0)

    @field_validator("remediation_ok_exit_codes")
    @classmethod
    def _validate_exit_codes(cls, value: str) -> str:
        codes = [c.strip() for c in value.split(",") if c.strip()]
        if not codes:
            raise ValueError("at least one accepted exit code is required")
        for code in codes:
            int(code)
        return value

    # ── Derived ──────────────────────────────────────────────────────
    @property
    def ok_exit_codes(self) -> frozenset[int]:
        """Parse comma-separated engine exit codes counted as success."""
        return frozenset(
            int(code.strip())
            for code in self.remediation_ok_exit_codes.split(",")
            if code.strip()
        )

    @property
    def report_path(self) -> Path:
        """Return the report directory, creating it if needed."""
        path = Path(self.report_dir).expanduser()
        path.mkdir(parents=True, exist_ok=True)
        return path

    @staticmethod
    def _timeout(value: float) -> Optional[float]:
        return value or None

    @property
    def remediation_timeout_or_none(self) -> Optional[float]:
        """Engine timeout, ``None`` when disabled with 0."""
        return self._timeout(self.remediation_timeout)

    @property
    def git_timeout_or_none(self) -> Optional[float]:
        """Git timeout, ``None`` when disabled with 0."""
        return self._timeout(self.git_timeout)


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Return the singleton Settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
