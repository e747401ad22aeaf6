"""
Client SDK for Automation Cloud jobs.

Create a job, react to its awaiting-input requests and emitted outputs, and
wait for it to finish:

    client = Client(service_id="...", auth="app-secret-key")
    job = await client.create_job(input={"url": "https://example.com"})
    products, = await job.wait_for_outputs("products")
    await job.wait_for_completion()

Call ``load_env()`` to pick up ``AC_*`` settings from a ``.env`` file.
"""

from .auth import ClientAuth, NoAuth, OAuth2ClientCredentials, SharedSecretAuth
from .client import Client
from .config import ClientConfig, LoggingConfig, Settings, configure, get_settings, load_env
from .errors import (
    ApiError,
    AutomationClientError,
    ClientConfigError,
    ErrorCode,
    JobAlreadyStartedError,
    JobFailedError,
    JobNotInitializedError,
    JobOutputWaitError,
    JobTrackError,
    NetworkError,
    TransportError,
)
from .events import EventBus, Subscription
from .job import Job
from .logging import StructuredLogger, configure_logging, get_logger
from .types import (
    JobCategory,
    JobError,
    JobInput,
    JobOutput,
    JobState,
    PreviousJobOutput,
    Tds,
)
from .vault import Vault

__version__ = "0.1.0"

__all__ = [
    # Client
    "Client",
    "Job",
    "Vault",
    # Types
    "JobCategory",
    "JobError",
    "JobInput",
    "JobOutput",
    "JobState",
    "PreviousJobOutput",
    "Tds",
    # Auth
    "ClientAuth",
    "NoAuth",
    "SharedSecretAuth",
    "OAuth2ClientCredentials",
    # Config
    "ClientConfig",
    "LoggingConfig",
    "Settings",
    "configure",
    "get_settings",
    "load_env",
    # Errors
    "ErrorCode",
    "AutomationClientError",
    "ClientConfigError",
    "JobNotInitializedError",
    "JobAlreadyStartedError",
    "TransportError",
    "NetworkError",
    "ApiError",
    "JobTrackError",
    "JobFailedError",
    "JobOutputWaitError",
    # Events & logging
    "EventBus",
    "Subscription",
    "StructuredLogger",
    "get_logger",
    "configure_logging",
]
