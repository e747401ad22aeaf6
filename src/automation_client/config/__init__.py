"""
Configuration system for automation-client.

This package provides typed configuration classes with:
- Dataclass-based settings with validation
- Environment variable loading (including .env files)
- YAML/TOML file loading validated with JSON schema
- Sensible defaults with override capability
"""

from .base import DEFAULT_API_TOKEN_URL, DEFAULT_API_URL, DEFAULT_VAULT_URL, LogFormat, LogLevel
from .client import ClientConfig
from .logging import LoggingConfig
from .settings import Settings, configure, get_settings, load_env, reset_settings

__all__ = [
    # Types
    "LogLevel",
    "LogFormat",
    "DEFAULT_API_URL",
    "DEFAULT_API_TOKEN_URL",
    "DEFAULT_VAULT_URL",
    # Sections
    "ClientConfig",
    "LoggingConfig",
    # Master config
    "Settings",
    # Global functions
    "get_settings",
    "configure",
    "reset_settings",
    "load_env",
]
