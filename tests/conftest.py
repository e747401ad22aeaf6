"""
Shared test fixtures and mocks for automation-client tests.

This module provides:
- MockAutomationServer: an aiohttp.web stand-in for the remote API and vault
- FakeAutomationApi: an in-memory gateway for tracker unit tests
- Fixtures wiring Clients to either of them
"""

from __future__ import annotations

import asyncio
import base64
import time
import uuid
from collections import defaultdict
from collections.abc import Callable
from typing import Any

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from automation_client import Client, JobState
from automation_client.errors import TransportError
from automation_client.logging import StructuredLogger
from automation_client.types import JobCategory, JobError, JobOutput, RemoteJob, RemoteJobEvent, Tds

SECRET_KEY = "some-secret-key"
CLIENT_ID = "some-client-id"
CLIENT_SECRET = "some-client-secret"


def random_id() -> str:
    return uuid.uuid4().hex[:12]


class MockHttpError(Exception):
    """Raised from mock hooks (or routes) to produce a structured error response."""

    def __init__(self, status: int, message: str, *, name: str = "Error", details: Any = None):
        super().__init__(message)
        self.status = status
        self.name = name
        self.message = message
        self.details = details


# =============================================================================
# Mock Automation Server
# =============================================================================


class MockAutomationServer:
    """
    Stand-in for the Automation Cloud API, vault and token endpoint.

    Behaviour modifiers (``add_output``, ``request_input``, ``success``,
    ``fail``, ``tds``) append to the job event log the way a running script
    would. Hooks registered with ``on(name, fn)`` run after a route did its
    work; raising MockHttpError from a hook turns the response into an error.
    """

    def __init__(self, *, input_timeout: float = 0.3):
        self.input_timeout = input_timeout
        self.app = web.Application(middlewares=[self._make_error_middleware()])
        self.app.router.add_post("/jobs", self.create_job)
        self.app.router.add_get("/jobs/{id}", self.get_job)
        self.app.router.add_get("/jobs/{id}/end-user", self.get_job_access_token)
        self.app.router.add_get("/jobs/{id}/events", self.get_job_events)
        self.app.router.add_get("/jobs/{id}/outputs", self.get_job_outputs)
        self.app.router.add_get("/jobs/{id}/outputs/{key}", self.get_job_output)
        self.app.router.add_post("/jobs/{id}/inputs", self.create_job_input)
        self.app.router.add_post("/jobs/{id}/cancel", self.cancel_job)
        self.app.router.add_post("/services/{id}/previous-job-outputs", self.query_previous_outputs)
        self.app.router.add_get("/3d-secure/{id}", self.get_tds)
        self.app.router.add_post("/auth/token", self.issue_token)
        self.app.router.add_post("/~vault/otp", self.create_otp)
        self.app.router.add_post("/~vault/pan", self.create_pan_token)
        self.app.router.add_post("/~vault/data", self.create_data_token)
        self.server: TestServer | None = None
        self.reset()

    def reset(self) -> None:
        self.hooks: dict[str, list[Callable[..., Any]]] = defaultdict(list)
        self.job: dict[str, Any] | None = None
        self.inputs: list[dict[str, Any]] = []
        self.outputs: list[dict[str, Any]] = []
        self.events: list[dict[str, Any]] = []
        self.requests: list[tuple[str, str]] = []
        self.last_headers: dict[str, str] = {}
        self.otp: str | None = None
        self.access_tokens: set[str] = set()
        self.tds_url = "https://example.com/3ds"
        self._input_timer: asyncio.TimerHandle | None = None

    @property
    def url(self) -> str:
        assert self.server is not None, "server not started"
        return f"http://{self.server.host}:{self.server.port}"

    async def start(self) -> None:
        self.reset()
        self.server = TestServer(self.app, host="127.0.0.1")
        await self.server.start_server()

    async def stop(self) -> None:
        self._cancel_input_timer()
        if self.server is not None:
            await self.server.close()

    def create_client(self, **overrides: Any) -> Client:
        config: dict[str, Any] = {
            "service_id": "123",
            "auth": SECRET_KEY,
            "poll_interval": 0.01,
            "api_url": self.url,
            "api_token_url": self.url + "/auth/token",
            "vault_url": self.url + "/~vault",
            "request_retry_count": 1,
            "request_retry_delay": 0.05,
        }
        config.update(overrides)
        return Client(**config)

    # Hooks

    def on(self, name: str, fn: Callable[..., Any]) -> None:
        self.hooks[name].append(fn)

    def remove_hooks(self, name: str) -> None:
        self.hooks.pop(name, None)

    def emit(self, name: str, *args: Any) -> None:
        for fn in list(self.hooks.get(name, ())):
            fn(*args)

    def count(self, method: str, path: str) -> int:
        return sum(1 for request in self.requests if request == (method, path))

    # Behaviour modifiers

    def set_state(self, state: JobState) -> None:
        assert self.job is not None
        self.job["state"] = state.value
        if state == JobState.PROCESSING:
            self.add_event("processing")
        elif state == JobState.SUCCESS:
            self.add_event("success")
        elif state == JobState.FAIL:
            self.add_event("fail")
        elif state == JobState.AWAITING_INPUT:
            self.add_event("awaitingInput", self.job.get("awaitingInputKey"))
        elif state == JobState.AWAITING_TDS:
            self.add_event("tdsStart")

    def add_event(self, name: str, key: str | None = None) -> None:
        self.events.append(
            {
                "id": random_id(),
                "name": name,
                "key": key,
                "createdAt": int(time.time() * 1000),
            }
        )

    def add_output(self, key: str, data: Any) -> None:
        assert self.job is not None
        self.outputs.append({"key": key, "data": data, "jobId": self.job["id"]})
        self.add_event("createOutput", key)
        self.emit("createOutput", key, data)

    def request_input(self, key: str) -> None:
        """Ask for input ``key``; the job fails with InputTimeout unless it arrives in time."""
        assert self.job is not None
        self.job["awaitingInputKey"] = key
        self.job["state"] = JobState.AWAITING_INPUT.value
        self.add_event("awaitingInput", key)
        self._cancel_input_timer()
        self._input_timer = asyncio.get_running_loop().call_later(
            self.input_timeout,
            self.fail,
            {
                "category": "client",
                "code": "InputTimeout",
                "message": f"Input {key} was not provided in time",
                "details": {"key": key},
            },
        )
        self.emit("requestInput", key)

    def tds(self, url: str = "https://example.com/3ds") -> None:
        assert self.job is not None
        self.job["tdsId"] = random_id()
        self.tds_url = url
        self.set_state(JobState.AWAITING_TDS)

    def tds_finish(self) -> None:
        assert self.job is not None
        self.job["state"] = JobState.PROCESSING.value
        self.add_event("tdsFinish")

    def success(self) -> None:
        self._cancel_input_timer()
        self.set_state(JobState.SUCCESS)
        self.emit("success")

    def fail(self, error: dict[str, Any]) -> None:
        assert self.job is not None
        self._cancel_input_timer()
        self.job["error"] = error
        self.set_state(JobState.FAIL)
        self.emit("fail", error)

    def add_input_object(self, obj: dict[str, Any]) -> None:
        assert self.job is not None
        for key, data in obj.items():
            self.inputs.append({"jobId": self.job["id"], "key": key, "data": data, "encrypted": False})

    def find_input(self, key: str) -> dict[str, Any] | None:
        return next((item for item in self.inputs if item["key"] == key), None)

    def _cancel_input_timer(self) -> None:
        if self._input_timer is not None:
            self._input_timer.cancel()
            self._input_timer = None

    # Middleware & auth

    def _make_error_middleware(self):
        @web.middleware
        async def error_middleware(request: web.Request, handler):
            self.requests.append((request.method, request.path))
            self.last_headers = dict(request.headers)
            try:
                return await handler(request)
            except MockHttpError as exc:
                return web.json_response(
                    {"name": exc.name, "message": exc.message, "details": exc.details},
                    status=exc.status,
                )

        return error_middleware

    def _authorize(self, request: web.Request, job_id: str | None = None) -> None:
        authorization = request.headers.get("Authorization", "")
        if authorization.startswith("Bearer "):
            if authorization[len("Bearer "):] in self.access_tokens:
                return
            raise web.HTTPUnauthorized()
        if authorization.startswith("Basic "):
            decoded = base64.b64decode(authorization[len("Basic "):]).decode("utf-8")
            key = decoded.split(":")[0]
            if key == SECRET_KEY:
                return
            if job_id and self.job and self.job["id"] == job_id and key == f"job-access-token-{job_id}":
                return
        raise web.HTTPForbidden()

    def _job_or_404(self, request: web.Request) -> dict[str, Any]:
        job_id = request.match_info["id"]
        self._authorize(request, job_id)
        if self.job is None or self.job["id"] != job_id:
            raise web.HTTPNotFound()
        return self.job

    # Routes

    async def create_job(self, request: web.Request) -> web.Response:
        self._authorize(request)
        body = await request.json()
        self.job = {
            "id": random_id(),
            "awaitingInputKey": None,
            "category": body.get("category") or "test",
            "state": JobState.PROCESSING.value,
            "error": None,
            "serviceId": body.get("serviceId"),
            "tdsId": None,
        }
        self.add_input_object(body.get("input") or {})
        self.emit("createJob", self.job)
        return web.json_response(self.job)

    async def get_job(self, request: web.Request) -> web.Response:
        job = self._job_or_404(request)
        self.emit("getJob", job)
        return web.json_response(job)

    async def get_job_access_token(self, request: web.Request) -> web.Response:
        job = self._job_or_404(request)
        self.emit("getJobAccessToken", job)
        return web.json_response({"token": f"job-access-token-{job['id']}"})

    async def get_job_events(self, request: web.Request) -> web.Response:
        self._job_or_404(request)
        offset = int(request.query.get("offset") or 0)
        self.emit("getJobEvents", offset)
        return web.json_response({"object": "list", "data": self.events[offset:]})

    async def get_job_outputs(self, request: web.Request) -> web.Response:
        self._job_or_404(request)
        return web.json_response({"object": "list", "data": self.outputs})

    async def get_job_output(self, request: web.Request) -> web.Response:
        self._job_or_404(request)
        key = request.match_info["key"]
        output = next((item for item in self.outputs if item["key"] == key), None)
        self.emit("getJobOutput", key)
        if output is None:
            raise web.HTTPNotFound()
        return web.json_response(output)

    async def create_job_input(self, request: web.Request) -> web.Response:
        job = self._job_or_404(request)
        body = await request.json()
        key, data = body["key"], body.get("data")
        self.add_input_object({key: data})
        if job.get("awaitingInputKey") == key:
            self._cancel_input_timer()
            job["awaitingInputKey"] = None
            self.set_state(JobState.PROCESSING)
        self.emit("createJobInput", key, data)
        return web.json_response({"key": key}, status=201)

    async def cancel_job(self, request: web.Request) -> web.Response:
        self._job_or_404(request)
        self.fail({"category": "client", "code": "JobCancelled", "message": "Job cancelled by client"})
        return web.json_response({}, status=200)

    async def query_previous_outputs(self, request: web.Request) -> web.Response:
        self._authorize(request)
        key = request.query.get("key")
        data = [{**output, "variability": 1} for output in self.outputs if output["key"] == key]
        self.emit("queryPreviousOutputs", key)
        return web.json_response({"object": "list", "data": data})

    async def get_tds(self, request: web.Request) -> web.Response:
        tds_id = request.match_info["id"]
        if self.job is None or self.job.get("tdsId") != tds_id:
            raise web.HTTPNotFound()
        return web.json_response({"id": tds_id, "url": self.tds_url})

    async def issue_token(self, request: web.Request) -> web.Response:
        form = await request.post()
        if form.get("client_id") != CLIENT_ID or form.get("client_secret") != CLIENT_SECRET:
            raise MockHttpError(401, "Invalid client credentials", name="AuthError")
        token = f"access-token-{random_id()}"
        self.access_tokens.add(token)
        self.emit("issueToken", token)
        return web.json_response({"access_token": token, "token_type": "bearer", "expires_in": 3600})

    async def create_otp(self, request: web.Request) -> web.Response:
        self._authorize(request)
        self.otp = random_id()
        self.emit("createOtp", self.otp)
        return web.json_response({"id": self.otp}, status=201)

    def _consume_otp(self, body: dict[str, Any]) -> None:
        if self.otp is None or body.get("otp") != self.otp:
            raise web.HTTPForbidden()

    async def create_pan_token(self, request: web.Request) -> web.Response:
        self._authorize(request)
        body = await request.json()
        self._consume_otp(body)
        pan = body.get("pan")
        if not isinstance(pan, str) or len(pan) != 16:
            raise web.HTTPBadRequest()
        self.otp = None
        self.emit("createPanToken", pan)
        return web.json_response({"key": "some-decryption-key", "panToken": "some-pan-token"}, status=201)

    async def create_data_token(self, request: web.Request) -> web.Response:
        self._authorize(request)
        body = await request.json()
        self._consume_otp(body)
        self.otp = None
        self.emit("createDataToken", body.get("data"))
        return web.json_response({"token": "some-data-token"}, status=201)


# =============================================================================
# Fake gateway (tracker unit tests)
# =============================================================================


class FakeAutomationApi:
    """In-memory gateway; each test scripts the event log directly."""

    def __init__(self, job_id: str = "job-1", state: JobState = JobState.PROCESSING):
        self.job = RemoteJob(id=job_id, state=state)
        self.events: list[RemoteJobEvent] = []
        self.outputs: dict[str, Any] = {}
        self.inputs: list[tuple[str, Any]] = []
        self.offsets: list[int] = []
        self.output_requests: list[str] = []
        self.events_error: Exception | None = None
        self.cancelled = False

    def add_event(self, name: str, key: str | None = None) -> None:
        self.events.append(RemoteJobEvent(id=str(len(self.events)), name=name, key=key))

    def add_output(self, key: str, data: Any) -> None:
        self.outputs[key] = data
        self.add_event("createOutput", key)

    def fail(self, error: JobError | None = None) -> None:
        self.job.state = JobState.FAIL
        self.job.error = error
        self.add_event("fail")

    async def create_job(self, *, service_id: str, category: JobCategory, input: dict[str, Any]) -> RemoteJob:
        self.job.service_id = service_id
        self.job.category = category
        return RemoteJob(id=self.job.id, state=self.job.state, category=category, service_id=service_id)

    async def get_job(self, job_id: str) -> RemoteJob:
        return self.job

    async def get_job_events(self, job_id: str, offset: int) -> list[RemoteJobEvent]:
        self.offsets.append(offset)
        if self.events_error is not None:
            raise self.events_error
        return list(self.events[offset:])

    async def get_job_output(self, job_id: str, key: str) -> JobOutput | None:
        self.output_requests.append(key)
        if key not in self.outputs:
            return None
        return JobOutput(key=key, data=self.outputs[key])

    async def get_job_outputs(self, job_id: str) -> list[JobOutput]:
        return [JobOutput(key=key, data=data) for key, data in self.outputs.items()]

    async def send_job_input(self, job_id: str, key: str, data: Any) -> None:
        self.inputs.append((key, data))

    async def cancel_job(self, job_id: str) -> None:
        self.cancelled = True

    async def get_job_access_token(self, job_id: str) -> str:
        return f"job-access-token-{job_id}"

    async def get_tds_for_job(self, job_id: str) -> Tds:
        return Tds(id="tds-1", url="https://example.com/3ds")

    async def close(self) -> None:
        pass


def make_http_error(status: int, message: str = "Boom") -> TransportError:
    return TransportError(message, http_status=status)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def quiet_logger() -> StructuredLogger:
    return StructuredLogger("automation_client.tests", level="WARNING", json_output=False)


@pytest_asyncio.fixture
async def mock_server():
    server = MockAutomationServer()
    await server.start()
    try:
        yield server
    finally:
        await server.stop()


@pytest_asyncio.fixture
async def client_factory(mock_server):
    """Create Clients bound to the mock server; all are closed on teardown."""
    clients: list[Client] = []

    def factory(**overrides: Any) -> Client:
        client = mock_server.create_client(**overrides)
        clients.append(client)
        return client

    yield factory
    for client in clients:
        await client.close()


@pytest.fixture
def fake_api() -> FakeAutomationApi:
    return FakeAutomationApi()


@pytest_asyncio.fixture
async def fake_client(fake_api, quiet_logger):
    """Client whose gateway is the in-memory FakeAutomationApi."""
    client = Client(service_id="service-1", poll_interval=0.01, logger=quiet_logger)
    real_api = client.api
    client.api = fake_api
    yield client
    await client.close()
    await real_api.close()
