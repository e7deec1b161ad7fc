"""
Configuration Module

Centralized configuration management for the engine.
"""

from autonomy.config.settings import (
    LoopSettings,
    ObservabilitySettings,
    ProviderSettings,
    SafetySettings,
    Settings,
    get_settings,
    load_settings,
)

__all__ = [
    "LoopSettings",
    "ObservabilitySettings",
    "ProviderSettings",
    "SafetySettings",
    "Settings",
    "get_settings",
    "load_settings",
]
