"""Orchestration context: the replay runtime behind ``ctx``.

An orchestrator is a function ``fn(ctx, input)``. Written as a generator,
it yields durable tasks and receives their results::

    def process_order(ctx: OrchestrationContext, order: dict):
        payment = yield ctx.call_activity("charge_card", input=order)
        yield ctx.create_timer(timedelta(minutes=5))
        shipment = yield ctx.call_activity("ship", input=order, retry_policy=SHIP_RETRIES)
        return {"payment": payment, "shipment": shipment}

The function is re-run from the top on every execution. Calls that were
already answered by the history resolve immediately; the first unanswered
one suspends the generator. Every scheduling call allocates the next
sequence id, so replaying the same history produces the same ids and the
same actions.

Rules for orchestrator code:
- No I/O, wall clock, randomness or threads. Use ``current_utc_datetime``
  and ``new_uuid()`` instead.
- Return right after calling ``continue_as_new``.
- Log through ``get_logger`` only when ``is_replaying`` is False.

The methods under "Runtime" are driven by ``OrchestrationExecutor`` and are
not part of the orchestrator-facing API.
"""

from __future__ import annotations

import inspect
import uuid
from collections.abc import Callable, Generator, Iterable
from datetime import datetime, timedelta
from typing import Any

from taskhub.core.actions import (
    Action,
    CompleteOrchestrationAction,
    CreateSubOrchestrationAction,
    CreateTimerAction,
    ScheduleTaskAction,
    SendEventAction,
)
from taskhub.core.codec import DEFAULT_CONVERTER, JsonDataConverter
from taskhub.core.errors import OrchestrationStateError, TaskFailedError
from taskhub.core.history import EPOCH, EventRaised
from taskhub.core.models import (
    FailureDetail,
    OrchestrationStatus,
    OrchestrationVersion,
    OrchestratorResult,
)
from taskhub.execution.retry import GiveUp, RetryPolicy
from taskhub.framework.logging import get_logger
from taskhub.orchestration.task import (
    CompletableTask,
    ExternalEventTask,
    RetryableTask,
    Task,
    TimerTask,
    WhenAllTask,
    WhenAnyTask,
    when_all,
    when_any,
)

log = get_logger(__name__)

# Namespace for deterministic orchestration UUIDs
UUID_NAMESPACE = uuid.UUID("9e952958-5e33-4daf-827f-2fa12937b875")


class OrchestrationContext:
    """Replay state of one orchestration execution."""

    def __init__(self, instance_id: str, converter: JsonDataConverter = DEFAULT_CONVERTER) -> None:
        self._instance_id = instance_id
        self._converter = converter
        self._is_replaying = True
        self._current_utc_datetime = EPOCH

        self._sequence_number = 0
        self._new_uuid_counter = 0
        self._pending_actions: dict[int, Action] = {}
        self._pending_tasks: dict[int, CompletableTask[Any]] = {}
        self._pending_events: dict[str, list[ExternalEventTask[Any]]] = {}
        self._unprocessed_events: list[EventRaised] = []
        self._custom_status: str | None = None

        self._generator: Generator[Task[Any], Any, Any] | None = None
        self._previous_task: Task[Any] | None = None
        self._is_complete = False
        self._blocked = False

        self._continued_as_new = False
        self._continue_as_new_input: Any = None
        self._save_events = False

        self._version_name: str | None = None
        self._history_patches: set[str] = set()
        self._applied_patches: dict[str, bool] = {}
        self._encountered_patches: list[str] = []

    # =========================================================================
    # Orchestrator API
    # =========================================================================

    @property
    def instance_id(self) -> str:
        return self._instance_id

    @property
    def is_replaying(self) -> bool:
        """True while the history being processed was already recorded."""
        return self._is_replaying

    @property
    def current_utc_datetime(self) -> datetime:
        """Timestamp of the current orchestrator episode. Deterministic."""
        return self._current_utc_datetime

    @property
    def version_name(self) -> str | None:
        return self._version_name

    def new_uuid(self) -> uuid.UUID:
        """Deterministic UUIDv5 derived from instance id, replay time and a counter."""
        name = f"{self._instance_id}-{self._current_utc_datetime.isoformat()}-{self._new_uuid_counter}"
        self._new_uuid_counter += 1
        return uuid.uuid5(UUID_NAMESPACE, name)

    def call_activity(
        self,
        name: str,
        *,
        input: Any = None,
        retry_policy: RetryPolicy | None = None,
    ) -> Task[Any]:
        """Schedule an activity and return the task to ``yield``."""
        self._ensure_running()
        if not name:
            raise ValueError("An activity name is required")
        raw_input = self._converter.serialize(input)
        if retry_policy is None:
            task: CompletableTask[Any] = CompletableTask(name)
        else:
            task = RetryableTask(retry_policy, name, raw_input, self._current_utc_datetime)
        self._schedule_activity(name, raw_input, task)
        return task

    def call_sub_orchestrator(
        self,
        name: str,
        *,
        input: Any = None,
        instance_id: str | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> Task[Any]:
        """Start a child orchestration and return the task to ``yield``."""
        self._ensure_running()
        if not name:
            raise ValueError("An orchestrator name is required")
        raw_input = self._converter.serialize(input)
        child_id = instance_id or str(self.new_uuid())
        if retry_policy is None:
            task: CompletableTask[Any] = CompletableTask(name)
        else:
            task = RetryableTask(
                retry_policy,
                name,
                raw_input,
                self._current_utc_datetime,
                is_sub_orchestration=True,
                instance_id=child_id,
            )
        self._schedule_sub_orchestration(name, raw_input, child_id, task)
        return task

    def create_timer(self, fire_at: datetime | timedelta) -> Task[None]:
        """Durable timer firing at an absolute time or after a delay."""
        self._ensure_running()
        if isinstance(fire_at, timedelta):
            fire_at = self._current_utc_datetime + fire_at
        return self._create_timer(fire_at)

    def wait_for_external_event(self, name: str) -> Task[Any]:
        """Task completed by the next ``EventRaised`` with this name.

        Names match case-insensitively. An event raised before anyone waited
        for it is buffered and consumed here.
        """
        self._ensure_running()
        key = name.casefold()
        task: ExternalEventTask[Any] = ExternalEventTask(name)
        for event in self._unprocessed_events:
            if event.name.casefold() == key:
                self._unprocessed_events.remove(event)
                task.complete(self._converter.deserialize(event.input))
                return task
        self._pending_events.setdefault(key, []).append(task)
        return task

    def send_event(self, instance_id: str, name: str, data: Any = None) -> None:
        """Raise an event on another orchestration instance (fire and forget)."""
        self._ensure_running()
        if not instance_id or not instance_id.strip():
            raise ValueError("A target instance id is required")
        action_id = self._next_sequence_number()
        raw_data = self._converter.serialize(data)
        self._pending_actions[action_id] = SendEventAction(
            id=action_id, instance_id=instance_id, name=name, data=raw_data
        )
        if not self._is_replaying:
            log.debug("orchestration.event_sent", target_instance_id=instance_id, event_name=name, action_id=action_id)

    def set_custom_status(self, status: Any) -> None:
        self._custom_status = self._converter.serialize(status)

    def continue_as_new(self, new_input: Any, save_events: bool = False) -> None:
        """Restart this instance with ``new_input`` once the function returns.

        With ``save_events``, external events that were raised but not yet
        consumed are carried over to the new execution.
        """
        self._ensure_running()
        self._continued_as_new = True
        self._continue_as_new_input = new_input
        self._save_events = save_events

    def is_patched(self, patch_name: str) -> bool:
        """Gate new code paths for instances that are already running.

        A patch is on if the history already recorded it, or if this code
        path is reached for the first time outside replay. Once decided, the
        answer is stable for the rest of the execution.
        """
        if patch_name in self._applied_patches:
            patched = self._applied_patches[patch_name]
        elif patch_name in self._history_patches:
            patched = self._applied_patches[patch_name] = True
        else:
            patched = self._applied_patches[patch_name] = not self._is_replaying
        if patched and patch_name not in self._encountered_patches:
            self._encountered_patches.append(patch_name)
        return patched

    def when_all(self, tasks: Iterable[Task[Any]]) -> WhenAllTask:
        return when_all(tasks)

    def when_any(self, tasks: Iterable[Task[Any]]) -> WhenAnyTask:
        return when_any(tasks)

    # =========================================================================
    # Runtime
    # =========================================================================

    @property
    def is_complete(self) -> bool:
        return self._is_complete

    def set_replaying(self, replaying: bool) -> None:
        self._is_replaying = replaying

    def set_current_utc_datetime(self, value: datetime) -> None:
        self._current_utc_datetime = value

    def set_version(self, version: OrchestrationVersion | None) -> None:
        """Record the version and patches an ``OrchestratorStarted`` carried."""
        if version is None:
            return
        if version.name:
            self._version_name = version.name
        self._history_patches.update(version.patches)

    def set_instance_id(self, instance_id: str) -> None:
        if instance_id:
            self._instance_id = instance_id

    def run(self, fn: Callable[..., Any], raw_input: str | None) -> None:
        """Invoke the orchestrator function from the top."""
        result = fn(self, self._converter.deserialize(raw_input))
        if not inspect.isgenerator(result):
            self.complete(result)
            return
        self._generator = result
        try:
            first = next(result)
        except StopIteration as stop:
            self.complete(stop.value)
            return
        self._previous_task = self._check_task(first)
        self.resume()

    def resume(self) -> None:
        """Feed completed tasks into the generator until it blocks or ends."""
        generator = self._generator
        if generator is None or self._is_complete:
            return
        while True:
            task = self._previous_task
            if task is None or not task.is_complete:
                self._blocked = True
                return
            try:
                if task.is_failed:
                    following = generator.throw(task.get_exception())
                else:
                    following = generator.send(task.get_result())
            except StopIteration as stop:
                self._blocked = False
                self._generator = None
                self.complete(stop.value)
                return
            self._previous_task = self._check_task(following)

    def pop_pending_action(self, action_id: int) -> Action | None:
        return self._pending_actions.pop(action_id, None)

    def pop_pending_task(self, action_id: int) -> CompletableTask[Any] | None:
        return self._pending_tasks.pop(action_id, None)

    def deserialize(self, raw: str | None) -> Any:
        return self._converter.deserialize(raw)

    def raise_event(self, event: EventRaised) -> None:
        """Hand an external event to the first waiter, or buffer it."""
        key = event.name.casefold()
        waiters = self._pending_events.get(key)
        if not waiters:
            self._unprocessed_events.append(event)
            return
        task = waiters.pop(0)
        if not waiters:
            del self._pending_events[key]
        task.complete(self._converter.deserialize(event.input))
        self.resume()

    def fail_or_retry(self, task: CompletableTask[Any], failure: TaskFailedError) -> None:
        """Apply a failed attempt to its task, scheduling a retry if allowed."""
        if isinstance(task, RetryableTask):
            delay = task.compute_next_delay(self._current_utc_datetime, failure.details.non_retriable)
            if not isinstance(delay, GiveUp):
                if not self._is_replaying:
                    log.info(
                        "orchestration.retry_scheduled",
                        task_name=task.name,
                        attempt=task.attempt_count + 1,
                        delay_seconds=delay.total_seconds(),
                    )
                if delay > timedelta(0):
                    self._create_timer(self._current_utc_datetime + delay, retryable=task)
                else:
                    self.retry(task)
                return
        task.fail(failure)
        self.resume()

    def retry(self, task: RetryableTask[Any]) -> None:
        """Schedule the next attempt of a retryable task under a fresh id."""
        task.increment_attempt_count()
        if task.is_sub_orchestration:
            self._schedule_sub_orchestration(task.name, task.input, task.instance_id or "", task)
        else:
            self._schedule_activity(task.name, task.input, task)

    def complete(self, result: Any) -> None:
        """Finish normally, or as ``CONTINUED_AS_NEW`` if that was requested."""
        if self._continued_as_new:
            self._complete_with(
                OrchestrationStatus.CONTINUED_AS_NEW,
                result=self._converter.serialize(self._continue_as_new_input),
            )
        else:
            self._complete_with(OrchestrationStatus.COMPLETED, result=self._converter.serialize(result))

    def fail(self, exc: BaseException) -> None:
        if self._is_complete:
            log.warning("orchestration.failure_after_completion", instance_id=self._instance_id, error=str(exc))
            return
        self._complete_with(OrchestrationStatus.FAILED, failure=FailureDetail.from_exception(exc))

    def terminate(self, raw_output: str | None) -> None:
        if self._is_complete:
            return
        self._complete_with(OrchestrationStatus.TERMINATED, result=raw_output)

    def stall(self) -> None:
        """Drop everything scheduled so far and report ``STALLED``."""
        self._pending_actions.clear()
        self._pending_tasks.clear()
        self._is_complete = False
        self._complete_with(OrchestrationStatus.STALLED)

    def build_result(self, history_exhausted: bool) -> OrchestratorResult:
        """Close out the execution and produce the result.

        Auto-completes with no output when the history ran out and nothing
        is scheduled, blocked or awaited (this includes an orchestrator that
        never started).
        """
        if self._continued_as_new and not self._is_complete:
            self.complete(None)
        elif (
            history_exhausted
            and not self._is_complete
            and not self._blocked
            and not self._pending_actions
            and not self._pending_events
        ):
            self.complete(None)

        actions = list(self._pending_actions.values())
        if self._continued_as_new and self._save_events:
            actions = [self._with_carryover(a) for a in actions]

        version = None
        if self._version_name or self._encountered_patches:
            version = OrchestrationVersion(
                name=self._version_name,
                patches=tuple(self._encountered_patches),
            )
        return OrchestratorResult(
            actions=tuple(actions),
            custom_status=self._custom_status,
            version=version,
        )

    def set_version_name(self, name: str | None) -> None:
        self._version_name = name

    # =========================================================================
    # Internals
    # =========================================================================

    def _ensure_running(self) -> None:
        if self._is_complete:
            raise OrchestrationStateError("The orchestration has already completed.")

    def _next_sequence_number(self) -> int:
        value = self._sequence_number
        self._sequence_number += 1
        return value

    @staticmethod
    def _check_task(value: Any) -> Task[Any]:
        if not isinstance(value, Task):
            raise TypeError(
                f"Orchestrators must yield durable tasks, got {type(value).__name__}"
            )
        return value

    def _schedule_activity(self, name: str, raw_input: str | None, task: CompletableTask[Any]) -> None:
        action_id = self._next_sequence_number()
        self._pending_actions[action_id] = ScheduleTaskAction(
            id=action_id,
            name=name,
            input=raw_input,
            task_execution_id=str(self.new_uuid()),
        )
        self._pending_tasks[action_id] = task
        if not self._is_replaying:
            log.debug("orchestration.activity_scheduled", activity=name, action_id=action_id)

    def _schedule_sub_orchestration(
        self,
        name: str,
        raw_input: str | None,
        instance_id: str,
        task: CompletableTask[Any],
    ) -> None:
        action_id = self._next_sequence_number()
        self._pending_actions[action_id] = CreateSubOrchestrationAction(
            id=action_id,
            name=name,
            instance_id=instance_id,
            input=raw_input,
        )
        self._pending_tasks[action_id] = task
        if not self._is_replaying:
            log.debug(
                "orchestration.sub_orchestration_scheduled",
                orchestration=name,
                child_instance_id=instance_id,
                action_id=action_id,
            )

    def _create_timer(self, fire_at: datetime, retryable: RetryableTask[Any] | None = None) -> TimerTask:
        action_id = self._next_sequence_number()
        self._pending_actions[action_id] = CreateTimerAction(id=action_id, fire_at=fire_at)
        task = TimerTask(fire_at, retryable=retryable)
        self._pending_tasks[action_id] = task
        return task

    def _complete_with(
        self,
        status: OrchestrationStatus,
        result: str | None = None,
        failure: FailureDetail | None = None,
    ) -> None:
        if self._is_complete:
            raise OrchestrationStateError("The orchestration has already completed.")
        action_id = self._next_sequence_number()
        self._pending_actions[action_id] = CompleteOrchestrationAction(
            id=action_id,
            status=status,
            result=result,
            failure=failure,
        )
        self._is_complete = True
        if not self._is_replaying:
            log.info("orchestration.completed", instance_id=self._instance_id, status=status.value)

    def _with_carryover(self, action: Action) -> Action:
        if not isinstance(action, CompleteOrchestrationAction):
            return action
        if action.status is not OrchestrationStatus.CONTINUED_AS_NEW:
            return action
        return CompleteOrchestrationAction(
            id=action.id,
            status=action.status,
            result=action.result,
            failure=action.failure,
            new_version=action.new_version,
            carryover_events=tuple(self._unprocessed_events),
        )
