"""
Client configuration.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..auth import ClientAuth, NoAuth, coerce_auth
from .base import DEFAULT_API_TOKEN_URL, DEFAULT_API_URL, DEFAULT_VAULT_URL


@dataclass
class ClientConfig:
    """
    Configuration held by a Client and shared by all jobs it creates.

    Durations are in seconds.
    """

    # Service to run jobs on; may instead be supplied per job
    service_id: str | None = None

    # None, a shared secret / job access token, or OAuth2 client credentials
    auth: ClientAuth = field(default_factory=NoAuth)

    api_url: str = DEFAULT_API_URL
    api_token_url: str = DEFAULT_API_TOKEN_URL
    vault_url: str = DEFAULT_VAULT_URL

    poll_interval: float = 1.0

    # Transport behaviour
    request_retry_count: int = 4
    request_retry_delay: float = 0.5
    request_timeout: float = 30.0

    auto_track: bool = True
    additional_headers: dict[str, str] = field(default_factory=dict)

    def __post_init__(self):
        """Validate configuration after initialization."""
        self.auth = coerce_auth(self.auth)
        if self.poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        if self.request_retry_count < 0:
            raise ValueError("request_retry_count cannot be negative")
        if self.request_retry_delay < 0:
            raise ValueError("request_retry_delay cannot be negative")
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be positive")
        for name in ("api_url", "api_token_url", "vault_url"):
            url = getattr(self, name)
            if not url.startswith(("http://", "https://")):
                raise ValueError(f"{name} must be a valid HTTP(S) URL")
            setattr(self, name, url.rstrip("/"))

    def with_overrides(self, **overrides: Any) -> ClientConfig:
        """Return a copy with selected fields replaced."""
        values = {name: getattr(self, name) for name in self.__dataclass_fields__}
        for key, value in overrides.items():
            if key not in values:
                raise TypeError(f"Unknown client config option: {key}")
            values[key] = value
        values["additional_headers"] = dict(values["additional_headers"])
        return ClientConfig(**values)


__all__ = ["ClientConfig"]
