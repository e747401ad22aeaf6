"""
Job tracker mirroring a remote Automation Cloud job.

A Job is created via ``Client.create_job`` (or resumed via ``Client.get_job``).
Once tracked, a background polling task reads the remote append-only event
log from the current offset and applies each event locally:

    awaitingInput -> state AWAITING_INPUT, local "awaitingInput"
    createOutput  -> fetch + cache output, local "output"
    processing    -> state PROCESSING
    success       -> state SUCCESS, local "success"
    fail          -> fetch error info, state FAIL, local "fail"
    tdsStart      -> state AWAITING_TDS, local "tdsStart"
    tdsFinish     -> state PROCESSING, local "tdsFinish"
    restart       -> ignored

After each fully applied batch the offset advances and a "trackTick" is
emitted; wait primitives re-check readiness on ticks and fail on
"trackError". The loop ends on SUCCESS (normally), on FAIL (JobFailedError)
or on a fetch/apply failure (JobTrackError). Its outcome is observed via
``wait_for_completion``.

Once SUCCESS or FAIL is reached (or a resumed job is already there), later
events change no state and dispatch nothing; createOutput still fills the
output cache.

The remote state is mirrored with polling delay; it is never more precise
than the last applied batch.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, TypeVar

from .errors import (
    ClientConfigError,
    JobAlreadyStartedError,
    JobFailedError,
    JobNotInitializedError,
    JobOutputWaitError,
    JobTrackError,
)
from .events import EventBus
from .logging import JobEventLog
from .types import (
    JobCategory,
    JobError,
    JobInput,
    JobInputObject,
    JobOutput,
    JobState,
    RemoteEventName,
    RemoteJobEvent,
    Tds,
)

if TYPE_CHECKING:
    from .api import AutomationApi
    from .client import Client
    from .logging import StructuredLogger

T = TypeVar("T")

# Unsubscribe function returned by on_* methods
JobEventHandler = Callable[[], None]

# Local bus event names
EVENT_STATE_CHANGED = "stateChanged"
EVENT_AWAITING_INPUT = "awaitingInput"
EVENT_OUTPUT = "output"
EVENT_INPUT = "input"
EVENT_SUCCESS = "success"
EVENT_FAIL = "fail"
EVENT_TDS_START = "tdsStart"
EVENT_TDS_FINISH = "tdsFinish"
EVENT_TRACK_TICK = "trackTick"
EVENT_TRACK_ERROR = "trackError"


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class Job:
    """Local, event-driven mirror of one remote job."""

    def __init__(
        self,
        client: Client,
        *,
        service_id: str | None = None,
        category: JobCategory | str = JobCategory.TEST,
        input: JobInputObject | None = None,
    ) -> None:
        self.client = client
        self.service_id = service_id if service_id is not None else client.config.service_id
        self.category = JobCategory(category)
        self.initial_input: JobInputObject = dict(input or {})

        self._events = EventBus(logger=client.logger)
        self._inputs: dict[str, JobInput] = {}
        self._outputs: dict[str, JobOutput] = {}
        self._state = JobState.CREATED
        self._error: JobError | None = None
        self._awaiting_input_key: str | None = None
        self._job_id: str | None = None
        self._event_offset = 0
        self._finished = False
        self._is_tracking = False
        self._track_task: asyncio.Task[None] | None = None

    def __repr__(self) -> str:
        return f"Job(job_id={self._job_id!r}, state={self._state.value!r})"

    # =========================================================================
    # Identity & state
    # =========================================================================

    @property
    def job_id(self) -> str:
        """Remote job id; usable with ``client.get_job`` to resume tracking."""
        if not self._job_id:
            raise JobNotInitializedError()
        return self._job_id

    @property
    def api(self) -> AutomationApi:
        return self.client.api

    @property
    def logger(self) -> StructuredLogger:
        return self.client.logger

    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def event_offset(self) -> int:
        return self._event_offset

    @property
    def is_tracking(self) -> bool:
        return self._is_tracking

    def get_state(self) -> JobState:
        """Last known state of the job."""
        return self._state

    def get_error_info(self) -> JobError | None:
        """Failure information if the job failed. Not an exception; do not raise it."""
        return self._error

    def get_awaiting_input_key(self) -> str | None:
        """Input key requested by the script while the job awaits input, else None."""
        return self._awaiting_input_key

    def get_inputs(self) -> dict[str, Any]:
        return {key: item.data for key, item in self._inputs.items()}

    def get_cached_outputs(self) -> dict[str, Any]:
        return {key: item.data for key, item in self._outputs.items()}

    def _set_state(self, new_state: JobState) -> None:
        previous_state = self._state
        if new_state == previous_state:
            return
        self._state = new_state
        if previous_state == JobState.AWAITING_INPUT:
            self._awaiting_input_key = None
        self.logger.log_state_change(self._job_id, new_state, previous_state)
        self._events.emit(EVENT_STATE_CHANGED, new_state, previous_state)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """
        Create the remote job and, with auto-tracking enabled, begin tracking.

        Use ``client.create_job()`` rather than calling this directly.

        Raises:
            JobAlreadyStartedError: If the job already has a remote id
            ClientConfigError: If no service id is resolvable
        """
        if self._job_id:
            raise JobAlreadyStartedError(job_id=self._job_id)
        if not self.service_id:
            raise ClientConfigError("serviceId is required to start the job")
        remote = await self.api.create_job(
            service_id=self.service_id,
            category=self.category,
            input=self.initial_input,
        )
        self._job_id = remote.id
        self._set_state(remote.state)
        for key, data in self.initial_input.items():
            self._inputs[key] = JobInput(key=key, data=data)
        self.logger.info("Job created", job_id=remote.id, service_id=self.service_id)
        if self.client.config.auto_track:
            self.start_tracking()

    async def track_existing(self, job_id: str) -> None:
        """
        Resume tracking a previously created job.

        Use ``client.get_job(job_id)`` rather than calling this directly.
        """
        if self._job_id:
            raise JobAlreadyStartedError(job_id=self._job_id)
        remote = await self.api.get_job(job_id)
        self._job_id = job_id
        self.category = remote.category
        if remote.service_id:
            self.service_id = remote.service_id
        self._set_state(remote.state)
        if remote.state == JobState.AWAITING_INPUT:
            self._awaiting_input_key = remote.awaiting_input_key
        if remote.state.is_terminal:
            # Replayed events only refill the output cache
            self._finished = True
            if remote.state == JobState.FAIL:
                self._error = remote.error or JobError()
        self.start_tracking()

    def start_tracking(self) -> None:
        """Start the polling loop. A loop that is still winding down after ``stop_tracking`` resumes."""
        self._is_tracking = True
        if self._track_task is not None and not self._track_task.done():
            return
        self._track_task = asyncio.create_task(self._track(), name=f"job-track-{self.job_id}")
        self._track_task.add_done_callback(self._on_track_done)
        self.logger.info("Job tracking started", job_id=self._job_id, offset=self._event_offset)

    def stop_tracking(self) -> None:
        """
        Stop tracking. Cooperative: an in-flight poll or sleep completes
        before the loop exits, and ``wait_for_completion`` then returns.
        """
        self._is_tracking = False

    def _on_track_done(self, task: asyncio.Task[None]) -> None:
        self._is_tracking = False
        if task.cancelled():
            self.logger.info("Job tracking cancelled", job_id=self._job_id)
            return
        # Retrieve the outcome so a loop failure nobody awaits is never reported as unhandled
        exc = task.exception()
        if exc is None:
            self.logger.info("Job tracking finished", job_id=self._job_id, state=self._state.value)
        elif isinstance(exc, JobFailedError):
            self.logger.info("Job tracking finished with job failure", job_id=self._job_id, error=exc.name)
        else:
            self.logger.log_error(exc, "Job tracking failed", job_id=self._job_id)

    async def wait_for_completion(self) -> None:
        """
        Wait for the tracking loop to end.

        Returns when the job succeeds or tracking is stopped; raises
        JobFailedError if the job fails and JobTrackError if tracking fails.
        Consumers should always await this to observe the job outcome.
        """
        task = self._track_task
        if task is None:
            return
        await asyncio.shield(task)

    async def cancel(self) -> None:
        """
        Request remote cancellation. Local state is unchanged; the resulting
        failure arrives through the event stream like any other.
        """
        await self.api.cancel_job(self.job_id)

    # =========================================================================
    # Inputs & outputs
    # =========================================================================

    async def submit_input(self, key: str, data: Any) -> None:
        """Send input ``data`` for ``key`` and record it locally."""
        await self.api.send_job_input(self.job_id, key, data)
        self._inputs[key] = JobInput(key=key, data=data)
        self._events.emit(EVENT_INPUT, self._inputs[key])

    async def get_output(self, key: str) -> Any:
        """Output data for ``key``: cached, else fetched. None if not emitted yet."""
        output = self._outputs.get(key)
        if output is None:
            output = await self.api.get_job_output(self.job_id, key)
            if output is not None:
                self._outputs[key] = output
        return output.data if output is not None else None

    async def get_outputs(self) -> list[JobOutput]:
        """All outputs emitted so far, as reported by the API."""
        return await self.api.get_job_outputs(self.job_id)

    async def get_access_token(self) -> str:
        """
        Job Access Token: a credential scoped to this job only.

        It can be handed to a less trusted party (e.g. a browser) and used as
        the shared-secret auth of another Client to resume tracking this job.
        """
        return await self.api.get_job_access_token(self.job_id)

    async def get_tds(self) -> Tds:
        """Active 3-D Secure challenge for this job."""
        return await self.api.get_tds_for_job(self.job_id)

    # =========================================================================
    # Wait primitives
    # =========================================================================

    async def wait_for_outputs(self, *keys: str) -> list[Any]:
        """
        Wait until all outputs ``keys`` are available.

        Returns the data in the order of ``keys``:

            products, delivery_options = await job.wait_for_outputs("products", "deliveryOptions")

        Raises:
            JobOutputWaitError: If the job finishes before all outputs are emitted
            JobTrackError: If tracking fails while waiting
        """
        return await self._wait_for(lambda: self._check_outputs_or_raise(list(keys)))

    def _check_outputs_or_raise(self, keys: list[str]) -> list[Any] | None:
        outputs = self._check_outputs(keys)
        if outputs is not None:
            return outputs
        missing = [key for key in keys if key not in self._outputs]
        if self._state == JobState.FAIL:
            raise JobOutputWaitError(
                "Job failed, and specified outputs were not emitted",
                state=self._state,
                job_id=self._job_id,
                missing_keys=missing,
            )
        if self._state == JobState.SUCCESS:
            raise JobOutputWaitError(
                "Job succeeded, but specified outputs were not emitted",
                state=self._state,
                job_id=self._job_id,
                missing_keys=missing,
            )
        return None

    def _check_outputs(self, keys: list[str]) -> list[Any] | None:
        values = []
        for key in keys:
            output = self._outputs.get(key)
            if output is None:
                return None
            values.append(output.data)
        return values

    async def _wait_for(self, result_fn: Callable[[], T | None]) -> T:
        """
        Resolve with the first non-None ``result_fn()`` evaluated now and on
        every tracking tick; fail if it raises or tracking fails.
        """
        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()

        def check() -> None:
            if future.done():
                return
            try:
                result = result_fn()
            except Exception as exc:
                future.set_exception(exc)
                return
            if result is not None:
                future.set_result(result)

        def on_track_error(error: BaseException) -> None:
            if not future.done():
                future.set_exception(error)

        subscriptions = [
            self._events.on(EVENT_TRACK_TICK, check),
            self._events.on(EVENT_TRACK_ERROR, on_track_error),
        ]
        try:
            check()
            track_error = self._track_error()
            if track_error is not None:
                on_track_error(track_error)
            return await future
        finally:
            for subscription in subscriptions:
                subscription()

    def _track_error(self) -> JobTrackError | None:
        task = self._track_task
        if task is None or not task.done() or task.cancelled():
            return None
        exc = task.exception()
        return exc if isinstance(exc, JobTrackError) else None

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def on_awaiting_input(self, key: str, fn: Callable[[str], Any]) -> JobEventHandler:
        """
        Handle input requests for ``key`` (``"*"`` for every key).

        Unless ``fn`` returns None, its result is submitted as the input data
        for the requested key. ``fn`` may be sync or async.
        """

        async def handler(requested_key: str) -> None:
            if key == "*" or requested_key == key:
                data = await _maybe_await(fn(requested_key))
                if data is not None:
                    await self.submit_input(requested_key, data)

        return self._create_job_event_handler(EVENT_AWAITING_INPUT, handler)

    def on_output(self, key: str, fn: Callable[[Any], Any]) -> JobEventHandler:
        """Handle output ``key`` (``"prefix:*"`` matches dynamic keys) with its data."""

        async def handler(output: JobOutput) -> None:
            if self._match_key(key, output.key):
                await _maybe_await(fn(output.data))

        return self._create_job_event_handler(EVENT_OUTPUT, handler)

    def on_dynamic_output(self, key_prefix: str, fn: Callable[[str, Any], Any]) -> JobEventHandler:
        """Handle outputs whose key is ``key_prefix`` or ``key_prefix:<anything>``."""

        async def handler(output: JobOutput) -> None:
            if output.key.startswith(key_prefix + ":") or self._match_key(key_prefix, output.key):
                await _maybe_await(fn(output.key, output.data))

        return self._create_job_event_handler(EVENT_OUTPUT, handler)

    def on_any_output(self, fn: Callable[[str, Any], Any]) -> JobEventHandler:
        async def handler(output: JobOutput) -> None:
            await _maybe_await(fn(output.key, output.data))

        return self._create_job_event_handler(EVENT_OUTPUT, handler)

    def on_output_event(self, event_type: str, fn: Callable[[dict[str, Any]], Any]) -> JobEventHandler:
        """Handle ``events:*`` outputs whose data is a mapping with a matching ``type``."""

        async def handler(_key: str, data: Any) -> None:
            if not isinstance(data, dict) or not isinstance(data.get("type"), str):
                return
            if self._match_key(event_type, data["type"]):
                await _maybe_await(fn(data))

        return self.on_dynamic_output("events", handler)

    def on_state_changed(self, fn: Callable[[JobState], Any]) -> JobEventHandler:
        async def handler(new_state: JobState, _previous_state: JobState) -> None:
            await _maybe_await(fn(new_state))

        return self._create_job_event_handler(EVENT_STATE_CHANGED, handler)

    def on_success(self, fn: Callable[[], Any]) -> JobEventHandler:
        return self._create_job_event_handler(EVENT_SUCCESS, fn)

    def on_fail(self, fn: Callable[[JobFailedError], Any]) -> JobEventHandler:
        """Handle job failure; ``fn`` receives the JobFailedError."""
        return self._create_job_event_handler(EVENT_FAIL, fn)

    def _create_job_event_handler(self, event: str, fn: Callable[..., Any]) -> JobEventHandler:
        async def handler(*args: Any) -> None:
            await _maybe_await(fn(*args))

        return self._events.on(event, handler)

    @staticmethod
    def _match_key(key_pattern: str, actual_key: str) -> bool:
        if key_pattern.endswith(":*"):
            key_base = key_pattern.split(":")[0]
            return actual_key.startswith(key_base + ":")
        return actual_key == key_pattern

    # =========================================================================
    # Tracking loop
    # =========================================================================

    async def _track(self) -> None:
        while self._is_tracking:
            poll_interval = self.client.config.poll_interval
            try:
                events = await self.api.get_job_events(self.job_id, self._event_offset)
                for event in events:
                    await self._process_job_event(event)
                self._event_offset += len(events)
                self._events.emit(EVENT_TRACK_TICK)
            except Exception as exc:
                error = JobTrackError(exc)
                self._events.emit(EVENT_TRACK_ERROR, error)
                raise error from exc
            if self._state == JobState.SUCCESS:
                return
            if self._state == JobState.FAIL:
                raise JobFailedError(self._error)
            await asyncio.sleep(poll_interval)

    async def _process_job_event(self, event: RemoteJobEvent) -> None:
        self.logger.log_job_event(
            JobEventLog(job_id=self.job_id, name=event.name, key=event.key, offset=self._event_offset)
        )
        key = event.key or ""
        if self._finished:
            if event.name == RemoteEventName.CREATE_OUTPUT:
                output = await self.api.get_job_output(self.job_id, key)
                if output is not None:
                    self._outputs[key] = JobOutput(key=key, data=output.data)
                return
            self.logger.debug("Ignoring event after terminal state", job_id=self._job_id, event=event.name)
            return
        match event.name:
            case RemoteEventName.AWAITING_INPUT:
                self._set_state(JobState.AWAITING_INPUT)
                self._awaiting_input_key = key
                self._events.emit(EVENT_AWAITING_INPUT, key)
            case RemoteEventName.CREATE_OUTPUT:
                output = await self.api.get_job_output(self.job_id, key)
                if output is not None:
                    output = JobOutput(key=key, data=output.data)
                    self._outputs[key] = output
                    self._events.emit(EVENT_OUTPUT, output)
            case RemoteEventName.PROCESSING:
                self._set_state(JobState.PROCESSING)
            case RemoteEventName.SUCCESS:
                self._finished = True
                self._set_state(JobState.SUCCESS)
                self._events.emit(EVENT_SUCCESS)
            case RemoteEventName.FAIL:
                remote = await self.api.get_job(self.job_id)
                self._finished = True
                self._error = remote.error or JobError()
                self._set_state(JobState.FAIL)
                self._events.emit(EVENT_FAIL, JobFailedError(self._error))
            case RemoteEventName.TDS_START:
                self._set_state(JobState.AWAITING_TDS)
                self._events.emit(EVENT_TDS_START)
            case RemoteEventName.TDS_FINISH:
                self._set_state(JobState.PROCESSING)
                self._events.emit(EVENT_TDS_FINISH)
            case RemoteEventName.RESTART:
                self.logger.warning("Ignoring unsupported 'restart' job event", job_id=self._job_id)
            case _:
                self.logger.warning("Ignoring unknown job event", job_id=self._job_id, event=event.name)


__all__ = [
    "Job",
    "JobEventHandler",
]
