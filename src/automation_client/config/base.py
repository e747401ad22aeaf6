"""
Base types for configuration.
"""

from __future__ import annotations

from typing import Literal

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
LogFormat = Literal["text", "json"]

DEFAULT_API_URL = "https://api.automationcloud.net"
DEFAULT_API_TOKEN_URL = "https://auth.automationcloud.net/auth/realms/automationcloud/protocol/openid-connect/token"
DEFAULT_VAULT_URL = "https://vault.automationcloud.net"


__all__ = [
    "LogLevel",
    "LogFormat",
    "DEFAULT_API_URL",
    "DEFAULT_API_TOKEN_URL",
    "DEFAULT_VAULT_URL",
]
