"""
In-process event bus scoped to a single job.

Handlers are registered per event name and invoked synchronously, in
registration order, from a snapshot of the subscriber list taken at emit
time. Handlers returning an awaitable are scheduled as independent tasks;
the emitter never waits for them.
"""

from __future__ import annotations

import asyncio
import inspect
import uuid
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from .logging import StructuredLogger, get_logger

EventHandler = Callable[..., Any]


@dataclass(eq=False)
class Subscription:
    """Handle for one handler registration. Calling it unsubscribes."""

    event: str
    handler: EventHandler
    bus: EventBus
    subscription_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def active(self) -> bool:
        return self in self.bus._handlers.get(self.event, ())

    def unsubscribe(self) -> None:
        self.bus.off(self)

    def __call__(self) -> None:
        self.unsubscribe()


class EventBus:
    """Named-event publish/subscribe with fire-and-forget async handlers."""

    def __init__(self, logger: StructuredLogger | None = None) -> None:
        self._handlers: dict[str, list[Subscription]] = defaultdict(list)
        self._tasks: set[asyncio.Task[Any]] = set()
        self.logger = logger or get_logger()

    def on(self, event: str, handler: EventHandler) -> Subscription:
        """Register ``handler`` for ``event``; returns an unsubscribe handle."""
        subscription = Subscription(event=event, handler=handler, bus=self)
        self._handlers[event].append(subscription)
        return subscription

    def off(self, subscription: Subscription | str, handler: EventHandler | None = None) -> None:
        """
        Remove exactly one registration.

        Accepts either the Subscription returned by ``on`` or an
        ``(event, handler)`` pair, in which case the earliest matching
        registration is removed.
        """
        if isinstance(subscription, Subscription):
            registrations = self._handlers.get(subscription.event)
            if registrations and subscription in registrations:
                registrations.remove(subscription)
            return
        registrations = self._handlers.get(subscription)
        if not registrations:
            return
        for registration in registrations:
            if registration.handler == handler:
                registrations.remove(registration)
                return

    def listener_count(self, event: str) -> int:
        return len(self._handlers.get(event, ()))

    def emit(self, event: str, *args: Any) -> bool:
        """
        Invoke every current subscriber of ``event`` with ``args``.

        Returns:
            True if the event had subscribers
        """
        registrations = list(self._handlers.get(event, ()))
        for registration in registrations:
            try:
                result = registration.handler(*args)
            except Exception as exc:
                self.logger.log_error(exc, f"Handler for '{event}' raised", event=event)
                continue
            if inspect.isawaitable(result):
                self._schedule(event, result)
        return bool(registrations)

    def _schedule(self, event: str, awaitable: Any) -> None:
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)

        def _done(t: asyncio.Task[Any]) -> None:
            self._tasks.discard(t)
            if t.cancelled():
                return
            exc = t.exception()
            if exc is not None:
                self.logger.log_error(exc, f"Async handler for '{event}' failed", event=event)

        task.add_done_callback(_done)

    @property
    def pending(self) -> int:
        """Number of async handler invocations still running."""
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait until all scheduled async handlers (including ones they spawn) finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def clear(self) -> None:
        """Remove all registrations."""
        self._handlers.clear()


__all__ = [
    "EventBus",
    "EventHandler",
    "Subscription",
]
