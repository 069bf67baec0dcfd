"""Work item and completion models.

Defines the data exchanged with the coordinator:
- FailureDetail: Structured description of a task failure
- OrchestratorWorkItem / ActivityWorkItem: Units of dispatched work
- OrchestratorResult / ActivityResult: What one runner invocation produced
- OrchestratorResponse / ActivityResponse: Results plus the echoed completion token

All models are frozen. A work item is owned by exactly one runner and a
result is built once at the end of a runner invocation.
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from taskhub.core.actions import Action
    from taskhub.core.history import HistoryEvent


class OrchestrationStatus(str, Enum):
    """Runtime status of an orchestration instance.

    Only the terminal values (plus ``STALLED``) ever appear in a
    ``CompleteOrchestrationAction`` produced by this worker.
    """

    RUNNING = "running"
    COMPLETED = "completed"
    CONTINUED_AS_NEW = "continued_as_new"
    FAILED = "failed"
    CANCELED = "canceled"
    TERMINATED = "terminated"
    PENDING = "pending"
    SUSPENDED = "suspended"
    STALLED = "stalled"


def qualified_type_name(exc_type: type) -> str:
    """Name used as ``FailureDetail.error_type``.

    Builtin exceptions keep their bare name (``ValueError``); everything else
    is ``module.QualName`` so a parent orchestration can tell apart two user
    exceptions that share a class name.
    """
    module = exc_type.__module__
    if module == "builtins":
        return exc_type.__qualname__
    return f"{module}.{exc_type.__qualname__}"


@dataclass(frozen=True)
class FailureDetail:
    """Structured description of a task failure.

    Example:
        >>> try:
        ...     raise ValueError("boom")
        ... except ValueError as exc:
        ...     detail = FailureDetail.from_exception(exc)
        >>> detail.error_type, detail.error_message
        ('ValueError', 'boom')
    """

    error_type: str
    error_message: str = ""
    stack_trace: str | None = None
    non_retriable: bool = False

    @classmethod
    def from_exception(
        cls,
        exc: BaseException,
        *,
        non_retriable: bool = False,
    ) -> FailureDetail:
        """Capture type, message and the full formatted stack trace."""
        trace = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return cls(
            error_type=qualified_type_name(type(exc)),
            error_message=str(exc),
            stack_trace=trace or None,
            non_retriable=non_retriable,
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "error_type": self.error_type,
            "error_message": self.error_message,
        }
        if self.stack_trace is not None:
            result["stack_trace"] = self.stack_trace
        if self.non_retriable:
            result["non_retriable"] = True
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FailureDetail:
        return cls(
            error_type=data["error_type"],
            error_message=data.get("error_message") or "",
            stack_trace=data.get("stack_trace"),
            non_retriable=bool(data.get("non_retriable", False)),
        )


@dataclass(frozen=True)
class TraceContext:
    """W3C trace-context carrier values propagated with an activity work item."""

    trace_parent: str
    trace_state: str | None = None


@dataclass(frozen=True)
class OrchestrationVersion:
    """Executing orchestrator version and the patches it reported."""

    name: str | None = None
    patches: tuple[str, ...] = ()


# =============================================================================
# WORK ITEMS
# =============================================================================


@dataclass(frozen=True)
class OrchestratorWorkItem:
    """One orchestrator replay step."""

    instance_id: str
    past_events: tuple[HistoryEvent, ...] = ()
    new_events: tuple[HistoryEvent, ...] = ()
    completion_token: bytes = b""

    kind = "orchestrator"


@dataclass(frozen=True)
class ActivityWorkItem:
    """One activity invocation.

    ``task_execution_id`` is opaque correlation data distinguishing attempts
    of the same logical task; the worker never inspects it.
    """

    instance_id: str
    task_id: int
    name: str
    input: str | None = None
    task_execution_id: str = ""
    parent_trace_context: TraceContext | None = None
    completion_token: bytes = b""

    kind = "activity"


@dataclass(frozen=True)
class HealthPing:
    """Keep-alive item on the work stream; carries no work."""

    kind = "health_ping"


WorkItem = OrchestratorWorkItem | ActivityWorkItem


# =============================================================================
# RESULTS
# =============================================================================


@dataclass(frozen=True)
class OrchestratorResult:
    """Actions produced by one execution of an orchestrator."""

    actions: tuple[Action, ...] = ()
    custom_status: str | None = None
    version: OrchestrationVersion | None = None


@dataclass(frozen=True)
class ActivityResult:
    """Outcome of one activity invocation.

    At most one of ``output`` and ``failure`` is set. Both unset means the
    activity produced no output, which is not a failure.
    """

    output: str | None = None
    failure: FailureDetail | None = None

    def __post_init__(self) -> None:
        if self.output is not None and self.failure is not None:
            raise ValueError("ActivityResult cannot carry both output and failure")

    @property
    def is_failure(self) -> bool:
        return self.failure is not None


@dataclass(frozen=True)
class ActivityResponse:
    """Activity completion sent to the coordinator."""

    instance_id: str
    task_id: int
    result: ActivityResult = field(default_factory=ActivityResult)
    completion_token: bytes = b""


@dataclass(frozen=True)
class OrchestratorResponse:
    """Orchestrator completion sent to the coordinator."""

    instance_id: str
    result: OrchestratorResult = field(default_factory=OrchestratorResult)
    completion_token: bytes = b""
