"""Builders for orchestration history events used across tests."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any

from taskhub.core.history import (
    EventRaised,
    ExecutionResumed,
    ExecutionStarted,
    ExecutionSuspended,
    ExecutionTerminated,
    OrchestratorStarted,
    SubOrchestrationInstanceCompleted,
    SubOrchestrationInstanceCreated,
    TaskCompleted,
    TaskFailed,
    TaskScheduled,
    TimerCreated,
    TimerFired,
)
from taskhub.core.models import FailureDetail, OrchestrationVersion

T0 = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)
INSTANCE_ID = "inst-1"


def payload(value: Any) -> str | None:
    return None if value is None else json.dumps(value)


def orchestrator_started(
    timestamp: datetime = T0,
    version: str | None = None,
    patches: tuple[str, ...] = (),
) -> OrchestratorStarted:
    if version is None and not patches:
        return OrchestratorStarted(timestamp=timestamp)
    return OrchestratorStarted(
        timestamp=timestamp,
        version=OrchestrationVersion(name=version, patches=patches),
    )


def execution_started(name: str, input: Any = None, instance_id: str = INSTANCE_ID) -> ExecutionStarted:
    return ExecutionStarted(name=name, input=payload(input), instance_id=instance_id, timestamp=T0)


def task_scheduled(event_id: int, name: str, input: Any = None) -> TaskScheduled:
    return TaskScheduled(event_id=event_id, name=name, input=payload(input))


def task_completed(task_id: int, result: Any = None) -> TaskCompleted:
    return TaskCompleted(task_scheduled_id=task_id, result=payload(result))


def task_failed(
    task_id: int,
    message: str = "boom",
    error_type: str = "ValueError",
    non_retriable: bool = False,
) -> TaskFailed:
    return TaskFailed(
        task_scheduled_id=task_id,
        failure=FailureDetail(error_type=error_type, error_message=message, non_retriable=non_retriable),
    )


def timer_created(event_id: int, fire_at: datetime) -> TimerCreated:
    return TimerCreated(event_id=event_id, fire_at=fire_at)


def timer_fired(timer_id: int, fire_at: datetime) -> TimerFired:
    return TimerFired(timer_id=timer_id, fire_at=fire_at)


def event_raised(name: str, data: Any = None) -> EventRaised:
    return EventRaised(name=name, input=payload(data))


def sub_orchestration_created(event_id: int, name: str, instance_id: str) -> SubOrchestrationInstanceCreated:
    return SubOrchestrationInstanceCreated(event_id=event_id, name=name, instance_id=instance_id)


def sub_orchestration_completed(task_id: int, result: Any = None) -> SubOrchestrationInstanceCompleted:
    return SubOrchestrationInstanceCompleted(task_scheduled_id=task_id, result=payload(result))


def suspended() -> ExecutionSuspended:
    return ExecutionSuspended()


def resumed() -> ExecutionResumed:
    return ExecutionResumed()


def terminated(output: Any = None) -> ExecutionTerminated:
    return ExecutionTerminated(input=payload(output))
