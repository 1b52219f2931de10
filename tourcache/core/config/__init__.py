"""
Configuration package for the tour cache service.

This package provides centralized, type-safe configuration management
using Pydantic Settings.
"""

from .settings import (
    Settings,
    get_settings,
    reload_settings,
)

__all__ = [
    "Settings",
    "get_settings",
    "reload_settings",
]
