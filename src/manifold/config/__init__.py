"""
Configuration management.

Configuration file parsing and environment resolution.
"""

from manifold.config.loader import Config, load_config
from manifold.config.resolver import resolve_config

__all__ = [
    "load_config",
    "Config",
    "resolve_config",
]
