"""
Centralized settings for the skillchain engine.

One validated, cached settings object.  Every field can be set via a
``SKILLCHAIN_*`` environment variable (e.g. ``SKILLCHAIN_DATABASE_URL``)
or a ``.env`` file in the working directory.

Tags:
    skillchain, configuration, settings, pydantic, caching, validation

Doc-Types:
    api-reference
"""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SkillChainSettings(BaseSettings):
    """Skillchain engine configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SKILLCHAIN_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Database ─────────────────────────────────────────────────
    database_url: str = Field(default="sqlite:///data/skillchain.db")
    database_echo: bool = Field(default=False)
    database_pool_size: int | None = Field(default=None)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json", description="json or console")
    service_name: str = Field(default="skillchain")

    # ── Chain defaults ───────────────────────────────────────────
    default_max_retries: int = Field(default=3, ge=1)
    default_max_total_failures: int = Field(default=5, ge=1)

    # ── Session-state side channel ───────────────────────────────
    session_state_enabled: bool = Field(default=False)
    session_expiry_hours: int = Field(default=24, ge=1)
    session_auto_save_on_link_complete: bool = Field(default=True)
    session_auto_load_on_start: bool = Field(default=True)
    session_auto_clear_on_complete: bool = Field(default=True)
    session_auto_save_on_pause: bool = Field(default=True)
    session_auto_save_on_cancel: bool = Field(default=True)

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value}")
        return level

    @field_validator("log_format")
    @classmethod
    def _check_format(cls, value: str) -> str:
        if value not in {"json", "console"}:
            raise ValueError("log_format must be 'json' or 'console'")
        return value

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, SkillChainSettings] = {}


def get_settings(*, _force_reload: bool = False) -> SkillChainSettings:
    """Load, validate, and cache a :class:`SkillChainSettings` instance.

    Parameters
    ----------
    _force_reload:
        Bypass cache and reload from the environment.
    """
    if not _force_reload and "default" in _settings_cache:
        return _settings_cache["default"]
    settings = SkillChainSettings()
    _settings_cache["default"] = settings
    return settings


def clear_settings_cache() -> None:
    """Drop the cached settings (used by tests that patch the environment)."""
    _settings_cache.clear()
