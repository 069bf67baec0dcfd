"""Orchestration history events.

One class per fact the coordinator records in an orchestration's timeline.
Events are immutable and are consumed in order by the orchestration executor;
``event_id`` of a *scheduled/created* event equals the sequence id of the
action that produced it, and *completed/failed/fired* events point back at
that id.

Example:
    >>> from taskhub.core.history import TaskScheduled, TaskCompleted
    >>> scheduled = TaskScheduled(event_id=0, name="echo", input='"hi"')
    >>> completed = TaskCompleted(task_scheduled_id=0, result='"hi"')
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime

from taskhub.core.models import FailureDetail, OrchestrationStatus, OrchestrationVersion, TraceContext

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


@dataclass(frozen=True, kw_only=True)
class HistoryEvent:
    """Common fields of every history event.

    ``event_id`` is -1 for events that do not correspond to an action.
    """

    event_id: int = -1
    timestamp: datetime = EPOCH


# --- Orchestrator episode markers ---


@dataclass(frozen=True, kw_only=True)
class OrchestratorStarted(HistoryEvent):
    """Start of one orchestrator episode; its timestamp is the replay clock."""

    version: OrchestrationVersion | None = None


@dataclass(frozen=True, kw_only=True)
class OrchestratorCompleted(HistoryEvent):
    pass


# --- Execution lifecycle ---


@dataclass(frozen=True, kw_only=True)
class ExecutionStarted(HistoryEvent):
    name: str
    input: str | None = None
    instance_id: str = ""
    parent_instance_id: str | None = None
    version: str | None = None
    parent_trace_context: TraceContext | None = None


@dataclass(frozen=True, kw_only=True)
class ExecutionCompleted(HistoryEvent):
    status: OrchestrationStatus
    result: str | None = None
    failure: FailureDetail | None = None


@dataclass(frozen=True, kw_only=True)
class ExecutionTerminated(HistoryEvent):
    input: str | None = None
    recurse: bool = False


@dataclass(frozen=True, kw_only=True)
class ExecutionSuspended(HistoryEvent):
    input: str | None = None


@dataclass(frozen=True, kw_only=True)
class ExecutionResumed(HistoryEvent):
    input: str | None = None


@dataclass(frozen=True, kw_only=True)
class ExecutionStalled(HistoryEvent):
    reason: str = ""
    description: str | None = None


# --- Activities ---


@dataclass(frozen=True, kw_only=True)
class TaskScheduled(HistoryEvent):
    name: str
    input: str | None = None
    task_execution_id: str = ""


@dataclass(frozen=True, kw_only=True)
class TaskCompleted(HistoryEvent):
    task_scheduled_id: int
    result: str | None = None
    task_execution_id: str = ""


@dataclass(frozen=True, kw_only=True)
class TaskFailed(HistoryEvent):
    task_scheduled_id: int
    failure: FailureDetail
    task_execution_id: str = ""


# --- Timers ---


@dataclass(frozen=True, kw_only=True)
class TimerCreated(HistoryEvent):
    fire_at: datetime


@dataclass(frozen=True, kw_only=True)
class TimerFired(HistoryEvent):
    timer_id: int
    fire_at: datetime


# --- Sub-orchestrations ---


@dataclass(frozen=True, kw_only=True)
class SubOrchestrationInstanceCreated(HistoryEvent):
    instance_id: str
    name: str
    input: str | None = None


@dataclass(frozen=True, kw_only=True)
class SubOrchestrationInstanceCompleted(HistoryEvent):
    task_scheduled_id: int
    result: str | None = None


@dataclass(frozen=True, kw_only=True)
class SubOrchestrationInstanceFailed(HistoryEvent):
    task_scheduled_id: int
    failure: FailureDetail


# --- External events ---


@dataclass(frozen=True, kw_only=True)
class EventRaised(HistoryEvent):
    name: str
    input: str | None = None


@dataclass(frozen=True, kw_only=True)
class EventSent(HistoryEvent):
    instance_id: str
    name: str
    input: str | None = None


EVENT_TYPES: dict[str, type[HistoryEvent]] = {
    cls.__name__: cls
    for cls in (
        OrchestratorStarted,
        OrchestratorCompleted,
        ExecutionStarted,
        ExecutionCompleted,
        ExecutionTerminated,
        ExecutionSuspended,
        ExecutionResumed,
        ExecutionStalled,
        TaskScheduled,
        TaskCompleted,
        TaskFailed,
        TimerCreated,
        TimerFired,
        SubOrchestrationInstanceCreated,
        SubOrchestrationInstanceCompleted,
        SubOrchestrationInstanceFailed,
        EventRaised,
        EventSent,
    )
}
