"""
Authentication for Automation Cloud requests.

Auth is a tagged variant with three cases:
- NoAuth: requests are sent without credentials
- SharedSecretAuth: app secret key or job access token, sent as Basic auth
- OAuth2ClientCredentials: client-credentials grant, sent as a Bearer token

Each variant is turned into an AuthAgent that produces request headers.
"""

from __future__ import annotations

import asyncio
import base64
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, TypeAlias, Union

import aiohttp

from .errors import ApiError, ErrorContext, InvalidConfigError, NetworkError, error_from_response

if TYPE_CHECKING:
    from .logging import StructuredLogger


@dataclass(frozen=True)
class NoAuth:
    kind = "none"


@dataclass(frozen=True)
class SharedSecretAuth:
    secret: str
    kind = "shared_secret"

    def __repr__(self) -> str:
        return "SharedSecretAuth(secret=***)"


@dataclass(frozen=True)
class OAuth2ClientCredentials:
    client_id: str
    client_secret: str
    kind = "oauth2_client_credentials"

    def __repr__(self) -> str:
        return f"OAuth2ClientCredentials(client_id={self.client_id!r}, client_secret=***)"


ClientAuth: TypeAlias = Union[NoAuth, SharedSecretAuth, OAuth2ClientCredentials]


def coerce_auth(value: Any) -> ClientAuth:
    """
    Normalize user-supplied auth into one of the tagged variants.

    Accepts None, a secret string, a ``(client_id, client_secret)`` pair,
    a mapping with ``client_id``/``client_secret`` keys (camelCase accepted),
    or a variant instance.
    """
    if value is None:
        return NoAuth()
    if isinstance(value, (NoAuth, SharedSecretAuth, OAuth2ClientCredentials)):
        return value
    if isinstance(value, str):
        return SharedSecretAuth(value) if value else NoAuth()
    if isinstance(value, Mapping):
        client_id = value.get("client_id", value.get("clientId"))
        client_secret = value.get("client_secret", value.get("clientSecret"))
        if client_id and client_secret:
            return OAuth2ClientCredentials(str(client_id), str(client_secret))
        raise InvalidConfigError("OAuth2 auth requires client_id and client_secret")
    if isinstance(value, (tuple, list)) and len(value) == 2:
        return OAuth2ClientCredentials(str(value[0]), str(value[1]))
    raise InvalidConfigError(f"Unsupported auth value of type {type(value).__name__}")


# =============================================================================
# Auth Agents
# =============================================================================


class AuthAgent(Protocol):
    """Produces authorization headers for a request."""

    async def headers(self, session: aiohttp.ClientSession) -> dict[str, str]:
        ...

    def invalidate(self) -> None:
        ...


class NoAuthAgent:
    async def headers(self, session: aiohttp.ClientSession) -> dict[str, str]:
        return {}

    def invalidate(self) -> None:
        pass


class BasicAuthAgent:
    """Basic auth with the secret as username and an empty password."""

    def __init__(self, username: str, password: str = "") -> None:
        token = base64.b64encode(f"{username}:{password}".encode()).decode("ascii")
        self._header = f"Basic {token}"

    async def headers(self, session: aiohttp.ClientSession) -> dict[str, str]:
        return {"Authorization": self._header}

    def invalidate(self) -> None:
        pass


class OAuth2Agent:
    """
    OAuth2 client-credentials agent.

    The access token is fetched from ``token_url`` on first use and cached
    until shortly before ``expires_in`` elapses.
    """

    def __init__(
        self,
        credentials: OAuth2ClientCredentials,
        token_url: str,
        *,
        expiry_skew: float = 30.0,
        logger: StructuredLogger | None = None,
    ) -> None:
        self.credentials = credentials
        self.token_url = token_url
        self.expiry_skew = expiry_skew
        self.logger = logger
        self._access_token: str | None = None
        self._expires_at = 0.0
        self._lock = asyncio.Lock()

    async def headers(self, session: aiohttp.ClientSession) -> dict[str, str]:
        token = await self._get_token(session)
        return {"Authorization": f"Bearer {token}"}

    def invalidate(self) -> None:
        self._access_token = None
        self._expires_at = 0.0

    async def _get_token(self, session: aiohttp.ClientSession) -> str:
        async with self._lock:
            if self._access_token and time.monotonic() < self._expires_at:
                return self._access_token

            form = {
                "grant_type": "client_credentials",
                "client_id": self.credentials.client_id,
                "client_secret": self.credentials.client_secret,
            }
            ctx = ErrorContext(method="POST", url=self.token_url)
            try:
                async with session.post(self.token_url, data=form) as resp:
                    try:
                        body = await resp.json(content_type=None)
                    except ValueError:
                        body = None
                    if resp.status >= 400:
                        raise error_from_response(resp.status, body, method="POST", url=self.token_url, context=ctx)
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                raise NetworkError(f"OAuth2 token request failed: {exc}", cause=exc, context=ctx) from exc

            if not isinstance(body, dict) or not body.get("access_token"):
                raise ApiError(
                    "OAuth2 token response did not contain an access_token",
                    name="AuthError",
                    context=ctx,
                )
            self._access_token = str(body["access_token"])
            expires_in = float(body.get("expires_in") or 60)
            self._expires_at = time.monotonic() + max(expires_in - self.expiry_skew, 0.0)
            if self.logger:
                self.logger.debug("OAuth2 access token obtained", expires_in=expires_in)
            return self._access_token


def create_auth_agent(
    auth: ClientAuth,
    *,
    token_url: str,
    logger: StructuredLogger | None = None,
) -> AuthAgent:
    """Create the header agent for an auth variant."""
    if isinstance(auth, SharedSecretAuth):
        return BasicAuthAgent(auth.secret)
    if isinstance(auth, OAuth2ClientCredentials):
        return OAuth2Agent(auth, token_url, logger=logger)
    return NoAuthAgent()


__all__ = [
    "NoAuth",
    "SharedSecretAuth",
    "OAuth2ClientCredentials",
    "ClientAuth",
    "coerce_auth",
    "AuthAgent",
    "NoAuthAgent",
    "BasicAuthAgent",
    "OAuth2Agent",
    "create_auth_agent",
]
