"""Durable task primitives.

Orchestrator code never waits on threads or futures. It ``yield``\\ s a
``Task`` and the orchestration context resumes the generator once the
history shows that task finished::

    Task
      ├── CompletableTask      ─ completed by one history event
      │     ├── TimerTask       ─ TimerFired
      │     ├── ExternalEventTask ─ EventRaised
      │     └── RetryableTask   ─ activity/sub-orchestration call with a RetryPolicy
      └── CompositeTask        ─ completed by its children
            ├── WhenAllTask     ─ all children done (results list, or CompositeTaskFailedError)
            └── WhenAnyTask     ─ first child done (result is that child)

Tasks complete synchronously while the executor walks the history, so the
same history always completes the same tasks in the same order.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import Any, Generic, TypeVar

from taskhub.core.errors import CompositeTaskFailedError, OrchestrationStateError, TaskHubError
from taskhub.execution.retry import GiveUp, RetryPolicy, next_delay

T = TypeVar("T")


class Task(Generic[T]):
    """A durable operation an orchestrator can wait on."""

    def __init__(self) -> None:
        self._is_complete = False
        self._result: T | None = None
        self._exception: TaskHubError | None = None
        self._parents: list[CompositeTask[Any]] = []

    @property
    def is_complete(self) -> bool:
        return self._is_complete

    @property
    def is_failed(self) -> bool:
        return self._exception is not None

    def get_result(self) -> T:
        """Result of a completed task; raises the failure of a failed one."""
        if not self._is_complete:
            raise OrchestrationStateError("The task has not completed.")
        if self._exception is not None:
            raise self._exception
        return self._result  # type: ignore[return-value]

    def get_exception(self) -> TaskHubError:
        if self._exception is None:
            raise OrchestrationStateError("The task has not failed.")
        return self._exception

    def _attach(self, parent: CompositeTask[Any]) -> None:
        self._parents.append(parent)

    def _finish(self) -> None:
        self._is_complete = True
        for parent in self._parents:
            parent.on_child_completed(self)


class CompletableTask(Task[T]):
    """Task completed from the outside by the history."""

    def __init__(self, name: str | None = None) -> None:
        super().__init__()
        self.name = name

    def complete(self, result: T) -> None:
        if self._is_complete:
            raise OrchestrationStateError("The task has already completed.")
        self._result = result
        self._finish()

    def fail(self, exception: TaskHubError) -> None:
        if self._is_complete:
            raise OrchestrationStateError("The task has already completed.")
        self._exception = exception
        self._finish()


class TimerTask(CompletableTask[None]):
    """Durable timer. ``retryable`` is set when the timer delays a retry."""

    def __init__(self, fire_at: datetime, retryable: RetryableTask[Any] | None = None) -> None:
        super().__init__("timer")
        self.fire_at = fire_at
        self.retryable = retryable


class ExternalEventTask(CompletableTask[T]):
    def __init__(self, name: str) -> None:
        super().__init__(name)


class RetryableTask(CompletableTask[T]):
    """Activity or sub-orchestration call governed by a ``RetryPolicy``.

    Each attempt is its own scheduled action with its own sequence id. This
    task stays open across attempts and completes with the first success or
    the last failure.
    """

    def __init__(
        self,
        policy: RetryPolicy,
        name: str,
        input: str | None,
        start_time: datetime,
        *,
        is_sub_orchestration: bool = False,
        instance_id: str | None = None,
    ) -> None:
        super().__init__(name)
        self.policy = policy
        self.input = input
        self.start_time = start_time
        self.is_sub_orchestration = is_sub_orchestration
        self.instance_id = instance_id
        self.attempt_count = 1

    def compute_next_delay(self, now: datetime, non_retriable: bool = False) -> timedelta | GiveUp:
        """Delay before the next attempt, or ``GIVE_UP``."""
        if non_retriable:
            return GiveUp.GIVE_UP
        return next_delay(self.policy, self.attempt_count + 1, now - self.start_time)

    def increment_attempt_count(self) -> None:
        self.attempt_count += 1


class CompositeTask(Task[T]):
    """Task whose completion depends on a set of child tasks."""

    def __init__(self, tasks: Iterable[Task[Any]]) -> None:
        super().__init__()
        self._tasks = list(tasks)
        self._completed_count = 0
        for task in self._tasks:
            task._attach(self)
            if task.is_complete:
                self._completed_count += 1

    @property
    def tasks(self) -> list[Task[Any]]:
        return list(self._tasks)

    def on_child_completed(self, task: Task[Any]) -> None:
        raise NotImplementedError


class WhenAllTask(CompositeTask[list[Any]]):
    """Completes once every child completed.

    The result is the list of child results in the given order. If any child
    failed, the task fails with ``CompositeTaskFailedError`` listing every
    child failure.
    """

    def __init__(self, tasks: Iterable[Task[Any]]) -> None:
        super().__init__(tasks)
        if self._completed_count == len(self._tasks):
            self._settle()

    def on_child_completed(self, task: Task[Any]) -> None:
        if self._is_complete:
            return
        self._completed_count += 1
        if self._completed_count == len(self._tasks):
            self._settle()

    def _settle(self) -> None:
        failures = [t.get_exception() for t in self._tasks if t.is_failed]
        if failures:
            self._exception = CompositeTaskFailedError(
                f"{len(failures)} out of {len(self._tasks)} tasks failed with an exception. "
                "See the exceptions list for details.",
                failures,
            )
        else:
            self._result = [t.get_result() for t in self._tasks]
        self._finish()


class WhenAnyTask(CompositeTask[Task[Any]]):
    """Completes as soon as any child completes; the result is that child."""

    def __init__(self, tasks: Iterable[Task[Any]]) -> None:
        super().__init__(tasks)
        if not self._tasks:
            raise ValueError("when_any requires at least one task")
        for task in self._tasks:
            if task.is_complete:
                self._result = task
                self._finish()
                break

    def on_child_completed(self, task: Task[Any]) -> None:
        if self._is_complete:
            return
        self._result = task
        self._finish()


def when_all(tasks: Iterable[Task[Any]]) -> WhenAllTask:
    """Wait for all ``tasks``; an empty list completes immediately with ``[]``."""
    return WhenAllTask(tasks)


def when_any(tasks: Iterable[Task[Any]]) -> WhenAnyTask:
    """Wait for the first of ``tasks`` to complete."""
    return WhenAnyTask(tasks)
