"""Orchestrator actions.

An action is an instruction the orchestrator hands back to the coordinator
at the end of an execution. ``id`` is the sequence id allocated when the
orchestrator code scheduled it; the coordinator records the matching history
event under the same id.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from taskhub.core.history import HistoryEvent
from taskhub.core.models import FailureDetail, OrchestrationStatus


@dataclass(frozen=True, kw_only=True)
class Action:
    id: int


@dataclass(frozen=True, kw_only=True)
class ScheduleTaskAction(Action):
    """Schedule an activity."""

    name: str
    input: str | None = None
    task_execution_id: str = ""


@dataclass(frozen=True, kw_only=True)
class CreateTimerAction(Action):
    """Create a durable timer."""

    fire_at: datetime


@dataclass(frozen=True, kw_only=True)
class CreateSubOrchestrationAction(Action):
    """Start a child orchestration."""

    name: str
    instance_id: str
    input: str | None = None
    version: str | None = None


@dataclass(frozen=True, kw_only=True)
class SendEventAction(Action):
    """Raise an event on another orchestration instance."""

    instance_id: str
    name: str
    data: str | None = None


@dataclass(frozen=True, kw_only=True)
class CompleteOrchestrationAction(Action):
    """Finish (or restart, or stall) the orchestration.

    ``carryover_events`` is only populated for ``CONTINUED_AS_NEW`` with
    ``save_events=True``.
    """

    status: OrchestrationStatus
    result: str | None = None
    failure: FailureDetail | None = None
    new_version: str | None = None
    carryover_events: tuple[HistoryEvent, ...] = ()


ACTION_TYPES: dict[str, type[Action]] = {
    cls.__name__: cls
    for cls in (
        ScheduleTaskAction,
        CreateTimerAction,
        CreateSubOrchestrationAction,
        SendEventAction,
        CompleteOrchestrationAction,
    )
}
