"""
==============================================================================
Configuration Package
==============================================================================

Centralized configuration management using Pydantic Settings.

Usage:
------
    from scan_engine.config import get_settings

    settings = get_settings()
    print(settings.cooldown_ms)
    print(settings.backend_list)

==============================================================================
"""

from .settings import KNOWN_BACKENDS, Settings, get_settings

__all__ = [
    "KNOWN_BACKENDS",
    "Settings",
    "get_settings",
]
