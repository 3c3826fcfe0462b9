"""Centralized configuration for the skillchain engine.

Quick start::

    from skillchain.core.config import get_settings

    settings = get_settings()
    print(settings.database_url)

Guardrails:
    ❌ Parsing env vars ad-hoc in each module
    ✅ ``get_settings().database_url`` from the cached singleton
"""

from .settings import SkillChainSettings, clear_settings_cache, get_settings

__all__ = [
    "SkillChainSettings",
    "clear_settings_cache",
    "get_settings",
]
