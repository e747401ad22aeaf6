"""
Automation Cloud API adapter.

Thin typed wrapper over ApiRequest exposing the job endpoints consumed by
the job tracker and the client.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from urllib.parse import quote

from .errors import TransportError
from .transport import ApiRequest, RetryConfig
from .types import (
    JobCategory,
    JobInputObject,
    JobOutput,
    PreviousJobOutput,
    RemoteJob,
    RemoteJobEvent,
    Tds,
)

if TYPE_CHECKING:
    from .config import ClientConfig
    from .logging import StructuredLogger


def _seg(value: str) -> str:
    return quote(str(value), safe="")


class AutomationApi:
    """Gateway to the remote job execution API."""

    def __init__(self, request: ApiRequest) -> None:
        self.request = request

    @classmethod
    def from_config(cls, config: ClientConfig, logger: StructuredLogger | None = None) -> AutomationApi:
        return cls(create_request(config, config.api_url, logger=logger))

    @property
    def logger(self) -> StructuredLogger:
        return self.request.logger

    async def close(self) -> None:
        await self.request.close()

    async def create_job(
        self,
        *,
        service_id: str,
        category: JobCategory,
        input: JobInputObject,
    ) -> RemoteJob:
        body = await self.request.post(
            "/jobs",
            body={
                "serviceId": service_id,
                "category": category.value,
                "input": input,
            },
        )
        return RemoteJob.from_dict(body)

    async def get_job(self, job_id: str) -> RemoteJob:
        body = await self.request.get(f"/jobs/{_seg(job_id)}")
        return RemoteJob.from_dict(body)

    async def get_job_access_token(self, job_id: str) -> str:
        body = await self.request.get(f"/jobs/{_seg(job_id)}/end-user")
        return body["token"]

    async def get_job_events(self, job_id: str, offset: int) -> list[RemoteJobEvent]:
        body = await self.request.get(f"/jobs/{_seg(job_id)}/events", query={"offset": offset})
        return [RemoteJobEvent.from_dict(item) for item in (body or {}).get("data", [])]

    async def get_job_output(self, job_id: str, key: str) -> JobOutput | None:
        """Fetch a single output; a 404 means the output is not available."""
        try:
            body = await self.request.get(f"/jobs/{_seg(job_id)}/outputs/{_seg(key)}")
        except TransportError as exc:
            if exc.http_status == 404:
                return None
            raise
        if not body:
            return None
        return JobOutput(key=body.get("key", key), data=body.get("data"))

    async def get_job_outputs(self, job_id: str) -> list[JobOutput]:
        body = await self.request.get(f"/jobs/{_seg(job_id)}/outputs")
        return [JobOutput.from_dict(item) for item in (body or {}).get("data", [])]

    async def send_job_input(self, job_id: str, key: str, data: Any) -> Any:
        return await self.request.post(
            f"/jobs/{_seg(job_id)}/inputs",
            body={"key": key, "data": data},
        )

    async def cancel_job(self, job_id: str) -> None:
        await self.request.post(f"/jobs/{_seg(job_id)}/cancel")

    async def query_previous_outputs(
        self,
        service_id: str,
        key: str | None = None,
        inputs: list[dict[str, Any]] | None = None,
    ) -> list[PreviousJobOutput]:
        body = await self.request.post(
            f"/services/{_seg(service_id)}/previous-job-outputs",
            body={"inputs": inputs or []},
            query={"key": key},
        )
        return [PreviousJobOutput.from_dict(item) for item in (body or {}).get("data", [])]

    async def get_tds_for_job(self, job_id: str) -> Tds:
        job = await self.get_job(job_id)
        body = await self.request.get(f"/3d-secure/{_seg(job.tds_id or '')}")
        return Tds.from_dict(body)


def create_request(
    config: ClientConfig,
    base_url: str,
    *,
    logger: StructuredLogger | None = None,
) -> ApiRequest:
    """Build an ApiRequest from client configuration."""
    return ApiRequest(
        base_url,
        auth=config.auth,
        token_url=config.api_token_url,
        retry=RetryConfig(attempts=config.request_retry_count, delay=config.request_retry_delay),
        headers=config.additional_headers,
        timeout=config.request_timeout,
        logger=logger,
    )


__all__ = ["AutomationApi", "create_request"]
