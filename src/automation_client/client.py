"""
Automation Cloud client.

A Client is scoped to a service and can create multiple jobs with the same
configuration; jobs running different scripts need separate Clients.

Example:
    ```python
    async with Client(service_id="...", auth="app-secret-key") as client:
        job = await client.create_job(input={"url": "https://example.com"})
        job.on_awaiting_input("selectedPrice", lambda key: {"price": 10})
        await job.wait_for_completion()
    ```
"""

from __future__ import annotations

import asyncio
import weakref
from typing import Any

from .api import AutomationApi
from .config import ClientConfig, Settings, get_settings
from .errors import ClientConfigError
from .job import Job
from .logging import StructuredLogger, get_logger
from .types import JobCategory, JobInputObject, PreviousJobOutput
from .vault import Vault


class Client:
    """Entry point for creating and resuming jobs."""

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        settings: Settings | None = None,
        logger: StructuredLogger | None = None,
        **overrides: Any,
    ) -> None:
        """
        Args:
            config: Client configuration; taken from ``settings`` or the global settings if omitted
            settings: Settings whose client and logging sections are used
            logger: Logger shared by the client, its jobs and transports
            **overrides: ClientConfig fields replacing the resolved configuration
        """
        if config is None:
            config = (settings or get_settings()).client
        if overrides:
            config = config.with_overrides(**overrides)
        self.config = config

        if logger is None and settings is not None:
            logger = StructuredLogger(
                level=settings.logging.level,
                json_output=settings.logging.format == "json",
                redact_secrets=settings.logging.redact_secrets,
                log_http=settings.logging.log_http,
                log_events=settings.logging.log_events,
            )
        self.logger = logger or get_logger()

        self.api = AutomationApi.from_config(self.config, logger=self.logger)
        self.vault = Vault(self)
        self._jobs: weakref.WeakSet[Job] = weakref.WeakSet()

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: Any) -> Client:
        return cls(settings=settings, **overrides)

    def __repr__(self) -> str:
        return f"Client(service_id={self.config.service_id!r}, api_url={self.config.api_url!r})"

    async def close(self) -> None:
        """
        Stop tracking jobs of this client, wait for their loops to exit and
        close the HTTP sessions of the API and the vault.
        """
        jobs = [job for job in self._jobs if job.is_tracking]
        for job in jobs:
            job.stop_tracking()
        if jobs:
            await asyncio.gather(*(job.wait_for_completion() for job in jobs), return_exceptions=True)
        await self.api.close()
        await self.vault.close()

    async def __aenter__(self) -> Client:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def create_job(
        self,
        *,
        category: JobCategory | str = JobCategory.TEST,
        input: JobInputObject | None = None,
        service_id: str | None = None,
    ) -> Job:
        """
        Create a new remote job and, unless auto-tracking is disabled, track it.

        Tracking stops once the job succeeds or fails. Always await
        ``job.wait_for_completion()`` to observe the outcome.

        Raises:
            ClientConfigError: If no service id is configured
            TransportError: If the job cannot be created
        """
        job = Job(self, service_id=service_id, category=category, input=input)
        self._jobs.add(job)
        await job.start()
        return job

    async def get_job(self, job_id: str) -> Job:
        """Resume tracking of a previously created job."""
        job = Job(self)
        self._jobs.add(job)
        await job.track_existing(job_id)
        return job

    async def query_previous_output(
        self,
        key: str,
        inputs: list[dict[str, Any]] | None = None,
    ) -> PreviousJobOutput | None:
        """
        Find an output previously emitted for this service.

        Args:
            key: Output key
            inputs: ``{"key": ..., "data": ...}`` inputs the previous job must have matched

        Returns:
            The first matching output, or None
        """
        if not self.config.service_id:
            raise ClientConfigError("serviceId is required to query previous outputs")
        outputs = await self.api.query_previous_outputs(self.config.service_id, key, inputs or [])
        return outputs[0] if outputs else None


__all__ = ["Client"]
