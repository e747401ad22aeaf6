"""
HTTP transport for the Automation Cloud APIs.

ApiRequest owns an aiohttp session bound to one base URL and provides:
- Authorization headers from the configured auth agent
- Retries with a fixed delay for transient failures (network, 502/503/504)
- Mapping of error responses to structured TransportError instances
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any

import aiohttp

from .auth import AuthAgent, ClientAuth, NoAuth, OAuth2Agent, create_auth_agent
from .errors import (
    RETRYABLE_STATUSES,
    ErrorContext,
    NetworkError,
    TransportError,
    error_from_response,
    is_retryable,
)
from .logging import RequestLog, ResponseLog, StructuredLogger, get_logger, timed


@dataclass
class RetryConfig:
    attempts: int = 4  # re-sends after the first attempt
    delay: float = 0.5
    retryable_statuses: tuple[int, ...] = RETRYABLE_STATUSES

    def __post_init__(self):
        if self.attempts < 0:
            raise ValueError("attempts cannot be negative")
        if self.delay < 0:
            raise ValueError("delay cannot be negative")


class ApiRequest:
    """Request helper scoped to a single API base URL."""

    def __init__(
        self,
        base_url: str,
        *,
        auth: ClientAuth | None = None,
        token_url: str = "",
        retry: RetryConfig | None = None,
        headers: dict[str, str] | None = None,
        timeout: float = 30.0,
        logger: StructuredLogger | None = None,
        auth_agent: AuthAgent | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.retry = retry or RetryConfig()
        self.headers = dict(headers or {})
        self.timeout = timeout
        self.logger = logger or get_logger()
        self.auth_agent = auth_agent or create_auth_agent(auth or NoAuth(), token_url=token_url, logger=self.logger)
        self._session: aiohttp.ClientSession | None = None

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={"Accept": "application/json", **self.headers},
            )
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> ApiRequest:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def get(self, path: str, *, query: dict[str, Any] | None = None) -> Any:
        return await self.request("GET", path, query=query)

    async def post(
        self,
        path: str,
        *,
        body: Any = None,
        query: dict[str, Any] | None = None,
    ) -> Any:
        return await self.request("POST", path, body=body, query=query)

    async def request(
        self,
        method: str,
        path: str,
        *,
        query: dict[str, Any] | None = None,
        body: Any = None,
    ) -> Any:
        """
        Send a request, retrying transient failures.

        Returns:
            Parsed JSON body, or None for empty responses

        Raises:
            TransportError: On non-retryable failure or once retries are exhausted
        """
        url = self.base_url + path
        params = _prepare_query(query)

        with self.logger.request_context(method, url) as request_id:
            attempt = 0
            while True:
                attempt += 1
                try:
                    return await self._send(method, url, params, body, request_id, attempt)
                except TransportError as exc:
                    if not is_retryable(exc) or attempt > self.retry.attempts:
                        raise
                    self.logger.warning(
                        f"Retrying {method} {url} after failure",
                        attempt=attempt,
                        error=exc.message,
                        delay=self.retry.delay,
                    )
                await asyncio.sleep(self.retry.delay)

    async def _send(
        self,
        method: str,
        url: str,
        params: dict[str, str] | None,
        body: Any,
        request_id: str,
        attempt: int,
    ) -> Any:
        ctx = ErrorContext(request_id=request_id, method=method, url=url, attempt=attempt)
        self.logger.log_request(RequestLog(request_id=request_id, method=method, url=url, attempt=attempt))
        session = self.session
        with timed() as timer:
            try:
                headers = await self.auth_agent.headers(session)
                async with session.request(
                    method,
                    url,
                    params=params,
                    json=body,
                    headers=headers,
                ) as resp:
                    payload = await _read_body(resp)
                    status = resp.status
            except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                self.logger.log_response(
                    ResponseLog(request_id=request_id, method=method, url=url, success=False, error=str(exc) or type(exc).__name__)
                )
                raise NetworkError(f"{method} {url} failed: {exc or type(exc).__name__}", cause=exc, context=ctx) from exc

        success = status < 400
        self.logger.log_response(
            ResponseLog(
                request_id=request_id,
                method=method,
                url=url,
                success=success,
                status_code=status,
                duration_ms=timer.elapsed_ms,
            )
        )
        if success:
            return payload

        if status == 401 and isinstance(self.auth_agent, OAuth2Agent):
            self.auth_agent.invalidate()
        error = error_from_response(status, payload, method=method, url=url, context=ctx)
        if status not in self.retry.retryable_statuses:
            error.retryable = False
        raise error


async def _read_body(resp: aiohttp.ClientResponse) -> Any:
    text = await resp.text()
    if not text:
        return None
    if resp.content_type == "application/json":
        try:
            return await resp.json()
        except ValueError:
            return text
    return text


def _prepare_query(query: dict[str, Any] | None) -> dict[str, str] | None:
    if not query:
        return None
    params: dict[str, str] = {}
    for key, value in query.items():
        if value is None:
            continue
        if isinstance(value, bool):
            params[key] = "true" if value else "false"
        else:
            params[key] = str(value)
    return params or None


__all__ = ["ApiRequest", "RetryConfig"]
