"""
Settings master configuration and global helpers.
"""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import jsonschema
from dotenv import find_dotenv, load_dotenv

from ..auth import OAuth2ClientCredentials, SharedSecretAuth
from ..config_schema import CONFIG_SCHEMA
from ..errors import InvalidConfigError
from ..logging import redact_secret
from .client import ClientConfig
from .logging import LoggingConfig


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """
    Master configuration for the automation client.

    Aggregates all configuration sections into a single object that can be
    loaded from environment variables, files, or constructed programmatically.
    """

    client: ClientConfig = field(default_factory=ClientConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls, prefix: str = "AC_") -> Settings:
        """
        Load settings from environment variables.

        Example:
            AC_SERVICE_ID=6a3b...
            AC_SECRET_KEY=...
            AC_POLL_INTERVAL=0.5
        """
        overrides: dict[str, Any] = {}

        if service_id := os.getenv(f"{prefix}SERVICE_ID"):
            overrides["service_id"] = service_id

        # Auth: OAuth2 credentials win over a shared secret
        client_id = os.getenv(f"{prefix}CLIENT_ID")
        client_secret = os.getenv(f"{prefix}CLIENT_SECRET")
        if client_id and client_secret:
            overrides["auth"] = OAuth2ClientCredentials(client_id, client_secret)
        elif secret := os.getenv(f"{prefix}SECRET_KEY"):
            overrides["auth"] = SharedSecretAuth(secret)

        if url := os.getenv(f"{prefix}API_URL"):
            overrides["api_url"] = url
        if url := os.getenv(f"{prefix}API_TOKEN_URL"):
            overrides["api_token_url"] = url
        if url := os.getenv(f"{prefix}VAULT_URL"):
            overrides["vault_url"] = url

        if interval := os.getenv(f"{prefix}POLL_INTERVAL"):
            overrides["poll_interval"] = float(interval)
        if retry_count := os.getenv(f"{prefix}REQUEST_RETRY_COUNT"):
            overrides["request_retry_count"] = int(retry_count)
        if retry_delay := os.getenv(f"{prefix}REQUEST_RETRY_DELAY"):
            overrides["request_retry_delay"] = float(retry_delay)
        if timeout := os.getenv(f"{prefix}REQUEST_TIMEOUT"):
            overrides["request_timeout"] = float(timeout)
        if auto_track := os.getenv(f"{prefix}AUTO_TRACK"):
            overrides["auto_track"] = _parse_bool(auto_track)

        settings = cls(client=ClientConfig(**overrides))

        if level := os.getenv(f"{prefix}LOG_LEVEL"):
            settings.logging.level = level.upper()  # type: ignore
        if log_format := os.getenv(f"{prefix}LOG_FORMAT"):
            settings.logging.format = log_format.lower()  # type: ignore

        return settings

    @classmethod
    def from_file(cls, path: str | Path) -> Settings:
        """
        Load settings from a YAML or TOML file.

        Args:
            path: Path to configuration file (.yaml, .yml, or .toml)

        Returns:
            Settings object with values from file
        """
        path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        suffix = path.suffix.lower()

        if suffix in (".yaml", ".yml"):
            try:
                import yaml  # type: ignore[import-untyped]
            except ImportError as exc:
                raise ImportError("PyYAML is required for YAML config files: pip install pyyaml") from exc
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        elif suffix == ".toml":
            import tomllib

            with open(path, "rb") as f:
                data = tomllib.load(f)
        else:
            raise ValueError(f"Unsupported config file format: {suffix}")

        return cls._from_dict(data)

    @classmethod
    def default(cls) -> Settings:
        return cls()

    @classmethod
    def _from_dict(cls, data: dict[str, Any]) -> Settings:
        """
        Create Settings from a dictionary.

        The dictionary is validated against the configuration schema first.
        """
        try:
            jsonschema.validate(instance=data, schema=CONFIG_SCHEMA)
        except jsonschema.ValidationError as e:
            raise InvalidConfigError(f"Configuration validation failed: {e.message}", cause=e) from e

        client_data = dict(data.get("client", {}))
        try:
            client = ClientConfig(**client_data)
            logging_config = LoggingConfig(**data.get("logging", {}))
        except ValueError as e:
            raise InvalidConfigError(f"Configuration validation failed: {e}", cause=e) from e

        return cls(client=client, logging=logging_config)

    def to_dict(self, *, redact: bool = True) -> dict[str, Any]:
        """Convert settings to dictionary, redacting credentials by default."""
        auth = self.client.auth
        if isinstance(auth, SharedSecretAuth):
            auth_value: Any = redact_secret(auth.secret) if redact else auth.secret
        elif isinstance(auth, OAuth2ClientCredentials):
            auth_value = {
                "client_id": auth.client_id,
                "client_secret": redact_secret(auth.client_secret) if redact else auth.client_secret,
            }
        else:
            auth_value = None

        client = {f.name: getattr(self.client, f.name) for f in dataclasses.fields(self.client)}
        client["auth"] = auth_value
        client["additional_headers"] = dict(self.client.additional_headers)
        return {
            "client": client,
            "logging": dataclasses.asdict(self.logging),
        }


# =============================================================================
# Global Settings & Helpers
# =============================================================================

_global_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the global settings instance, creating it from the environment if needed."""
    global _global_settings
    if _global_settings is None:
        _global_settings = Settings.from_env()
    return _global_settings


def configure(settings: Settings | None = None, **kwargs) -> Settings:
    """
    Configure global settings.

    Args:
        settings: Settings object to use globally
        **kwargs: Override specific client settings

    Returns:
        The configured Settings object
    """
    global _global_settings

    if settings is not None:
        _global_settings = settings
    elif _global_settings is None:
        _global_settings = Settings.from_env()

    if kwargs:
        _global_settings.client = _global_settings.client.with_overrides(**kwargs)

    return _global_settings


def reset_settings() -> None:
    """Drop the global settings instance."""
    global _global_settings
    _global_settings = None


def load_env(path: str | None = None, *, override: bool = False) -> bool:
    """
    Load environment variables from a .env file.

    Args:
        path: Optional path to a .env file. If not provided, uses find_dotenv().
        override: Whether to override existing environment variables.

    Returns:
        True if a .env file was found and loaded, False otherwise.
    """
    env_path = path or find_dotenv(usecwd=True)
    if not env_path:
        return False
    return load_dotenv(env_path, override=override)


__all__ = ["Settings", "get_settings", "configure", "reset_settings", "load_env"]
