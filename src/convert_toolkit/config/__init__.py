"""Configuration management for the conversion toolkit."""

from __future__ import annotations

from .constants import *  # noqa: F403, F401
from .settings import ConvertToolkitConfig, get_config

__all__ = [
    "ConvertToolkitConfig",
    "get_config",
]
