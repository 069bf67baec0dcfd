"""Completion reporting to the coordinator.

Runners push their results back through a ``CompletionReporter``. The
shipped implementation posts JSON over one long-lived ``httpx.Client``,
which is safe to share between runner threads and is released only at
worker shutdown.

Transport failures are classified for logging and then raised as the
single ``CompletionReportError`` type::

    httpx.ConnectError / ConnectTimeout / HTTP 503   → UNAVAILABLE
    httpx.RemoteProtocolError / ReadError / HTTP 499 → CANCELLED
    anything else                                     → UNEXPECTED

Whether to redeliver is the coordinator's decision; both ``complete_*``
calls are idempotent on the coordinator side for a repeated completion
token.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

import httpx

from taskhub.core.codec import encode_activity_response, encode_orchestrator_response
from taskhub.core.errors import CompletionReportError, TransportFailure
from taskhub.core.models import ActivityResponse, OrchestratorResponse
from taskhub.core.settings import WorkerSettings
from taskhub.framework.logging import get_logger

log = get_logger(__name__)

COMPLETE_ACTIVITY_PATH = "/CompleteActivityTask"
COMPLETE_ORCHESTRATOR_PATH = "/CompleteOrchestratorTask"

_UNAVAILABLE_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout)
_CANCELLED_ERRORS = (httpx.RemoteProtocolError, httpx.ReadError)
_UNAVAILABLE_STATUS = 503
_CANCELLED_STATUS = 499


@runtime_checkable
class CompletionReporter(Protocol):
    """The coordinator's completion surface as seen by runners."""

    @property
    def endpoint(self) -> str:
        """Coordinator identity (``host:port``) for log messages."""
        ...

    def complete_activity_task(self, response: ActivityResponse) -> None: ...

    def complete_orchestrator_task(self, response: OrchestratorResponse) -> None: ...


def classify_transport_error(exc: BaseException) -> TransportFailure:
    """Map an httpx failure onto the coordinator failure kinds."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        if status == _UNAVAILABLE_STATUS:
            return TransportFailure.UNAVAILABLE
        if status == _CANCELLED_STATUS:
            return TransportFailure.CANCELLED
        return TransportFailure.UNEXPECTED
    if isinstance(exc, _UNAVAILABLE_ERRORS):
        return TransportFailure.UNAVAILABLE
    if isinstance(exc, _CANCELLED_ERRORS):
        return TransportFailure.CANCELLED
    return TransportFailure.UNEXPECTED


def log_report_failure(error: CompletionReportError, endpoint: str, work_item_kind: str) -> None:
    """Log a failed completion with a message specific to its cause."""
    if error.failure is TransportFailure.UNAVAILABLE:
        message = f"The coordinator at {endpoint} is unavailable while completing the {work_item_kind} task."
    elif error.failure is TransportFailure.CANCELLED:
        message = (
            f"The worker has disconnected from {endpoint} while completing the {work_item_kind} task."
        )
    else:
        message = f"Unexpected failure completing the {work_item_kind} task at {endpoint}."
    log.warning(
        message,
        endpoint=endpoint,
        work_item_kind=work_item_kind,
        failure=error.failure.value,
        error=str(error.cause or error),
    )


class HttpCompletionReporter:
    """Completion reporter over HTTP/JSON.

    Example:
        >>> reporter = HttpCompletionReporter("http://localhost:4001")
        >>> reporter.endpoint
        'localhost:4001'
        >>> reporter.close()
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )
        url = self._client.base_url
        self._endpoint = f"{url.host}:{url.port}" if url.port else url.host

    @classmethod
    def from_settings(cls, settings: WorkerSettings) -> HttpCompletionReporter:
        return cls(settings.coordinator_url, timeout=settings.request_timeout)

    @property
    def endpoint(self) -> str:
        return self._endpoint

    def complete_activity_task(self, response: ActivityResponse) -> None:
        self._post(COMPLETE_ACTIVITY_PATH, encode_activity_response(response), response.instance_id)

    def complete_orchestrator_task(self, response: OrchestratorResponse) -> None:
        self._post(COMPLETE_ORCHESTRATOR_PATH, encode_orchestrator_response(response), response.instance_id)

    def _post(self, path: str, payload: dict[str, Any], instance_id: str) -> None:
        try:
            resp = self._client.post(path, json=payload)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise CompletionReportError(
                f"Completion call {path} failed: {exc}",
                failure=classify_transport_error(exc),
                cause=exc,
            ).with_context(instance_id=instance_id, endpoint=self._endpoint)

    def close(self) -> None:
        """Release the underlying connection pool."""
        self._client.close()

    def __enter__(self) -> HttpCompletionReporter:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()
