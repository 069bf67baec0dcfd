"""Orchestration executor.

``execute(past_events, new_events)`` replays an orchestrator over its
history and returns the actions it wants next. The history is walked in
order, past events first with ``is_replaying`` set, then new events::

    OrchestratorStarted   → replay clock, requested version, recorded patches
    ExecutionStarted      → resolve the orchestrator and run it from the top
    TaskScheduled,
    TimerCreated,
    SubOrchestration...Created → must match an action the code just scheduled
    TaskCompleted/Failed,
    TimerFired,
    SubOrchestration...Completed/Failed → complete the waiting task, resume
    EventRaised           → first waiter, or buffered
    ExecutionSuspended/Resumed → buffer events while suspended
    ExecutionTerminated   → complete as TERMINATED (even while suspended)

Outcomes:
- The orchestrator raised, or the history does not match the code
  (``NonDeterminismError``), or the name is unknown → one FAILED completion.
- The requested version is not registered → one STALLED completion.
- ``OrchestrationStateError`` (a broken runtime invariant) propagates.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

from taskhub.core.codec import DEFAULT_CONVERTER, JsonDataConverter
from taskhub.core.errors import (
    NonDeterminismError,
    OrchestrationStateError,
    TaskFailedError,
    VersionNotRegisteredError,
)
from taskhub.core.history import (
    EventRaised,
    EventSent,
    ExecutionCompleted,
    ExecutionResumed,
    ExecutionStalled,
    ExecutionStarted,
    ExecutionSuspended,
    ExecutionTerminated,
    HistoryEvent,
    OrchestratorCompleted,
    OrchestratorStarted,
    SubOrchestrationInstanceCompleted,
    SubOrchestrationInstanceCreated,
    SubOrchestrationInstanceFailed,
    TaskCompleted,
    TaskFailed,
    TaskScheduled,
    TimerCreated,
    TimerFired,
)
from taskhub.core.models import OrchestratorResult
from taskhub.execution.registry import Registrations
from taskhub.framework.logging import get_logger
from taskhub.orchestration.context import OrchestrationContext
from taskhub.orchestration.task import TimerTask

log = get_logger(__name__)

# TimerCreated id used by the coordinator for its own batching timers
INFRASTRUCTURE_TIMER_ID = -100


class OrchestrationExecutor:
    """Deterministically replay orchestrators against their history."""

    def __init__(
        self,
        registrations: Registrations,
        converter: JsonDataConverter = DEFAULT_CONVERTER,
    ) -> None:
        self._registrations = registrations
        self._converter = converter

    def execute(
        self,
        past_events: Sequence[HistoryEvent],
        new_events: Sequence[HistoryEvent],
        instance_id: str = "",
    ) -> OrchestratorResult:
        """Replay ``past_events`` then apply ``new_events``.

        Raises:
            OrchestrationStateError: On an unknown event type or another
                broken runtime invariant.
        """
        replay = _Replay(self._registrations, OrchestrationContext(instance_id, self._converter))
        history_exhausted = False
        try:
            replay.process_all(past_events, replaying=True)
            replay.process_all(new_events, replaying=False)
            history_exhausted = True
        except OrchestrationStateError:
            raise
        except VersionNotRegisteredError as exc:
            log.warning("orchestration.version_not_registered", instance_id=replay.ctx.instance_id, error=exc.message)
            replay.ctx.stall()
        except Exception as exc:
            if not replay.ctx.is_replaying:
                log.warning(
                    "orchestration.failed",
                    instance_id=replay.ctx.instance_id,
                    error_type=type(exc).__name__,
                    error=str(exc),
                )
            replay.ctx.fail(exc)
        return replay.ctx.build_result(history_exhausted)


class _Replay:
    """One walk over one orchestration's history."""

    def __init__(self, registrations: Registrations, ctx: OrchestrationContext) -> None:
        self.ctx = ctx
        self._registrations = registrations
        self._suspended = False
        self._suspended_events: list[HistoryEvent] = []
        self._handlers: dict[type[HistoryEvent], Callable[[Any], None]] = {
            OrchestratorStarted: self._on_orchestrator_started,
            OrchestratorCompleted: self._ignore,
            ExecutionStarted: self._on_execution_started,
            ExecutionCompleted: self._ignore,
            ExecutionTerminated: self._on_execution_terminated,
            ExecutionSuspended: self._on_execution_suspended,
            ExecutionResumed: self._on_execution_resumed,
            ExecutionStalled: self._ignore,
            TaskScheduled: self._on_task_scheduled,
            TaskCompleted: self._on_task_completed,
            TaskFailed: self._on_task_failed,
            TimerCreated: self._on_timer_created,
            TimerFired: self._on_timer_fired,
            SubOrchestrationInstanceCreated: self._on_sub_orchestration_created,
            SubOrchestrationInstanceCompleted: self._on_task_completed,
            SubOrchestrationInstanceFailed: self._on_task_failed,
            EventRaised: self.ctx.raise_event,
            EventSent: self._on_event_sent,
        }

    def process_all(self, events: Sequence[HistoryEvent], replaying: bool) -> None:
        self.ctx.set_replaying(replaying)
        for event in events:
            self.process(event)

    def process(self, event: HistoryEvent) -> None:
        overrides_suspension = isinstance(event, (ExecutionResumed, ExecutionTerminated))
        if self._suspended and not overrides_suspension:
            if not isinstance(event, ExecutionSuspended):
                self._suspended_events.append(event)
            return

        handler = self._handlers.get(type(event))
        if handler is None:
            raise OrchestrationStateError(f"Don't know how to handle history event {type(event).__name__}")
        handler(event)

    # --- lifecycle ---

    def _ignore(self, event: HistoryEvent) -> None:
        pass

    def _on_orchestrator_started(self, event: OrchestratorStarted) -> None:
        self.ctx.set_current_utc_datetime(event.timestamp)
        self.ctx.set_version(event.version)

    def _on_execution_started(self, event: ExecutionStarted) -> None:
        self.ctx.set_instance_id(event.instance_id)
        version_name, fn = self._registrations.get_orchestrator(event.name, self.ctx.version_name)
        self.ctx.set_version_name(version_name)
        if not self.ctx.is_replaying:
            log.info("orchestration.started", instance_id=self.ctx.instance_id, orchestration=event.name)
        self.ctx.run(fn, event.input)

    def _on_execution_terminated(self, event: ExecutionTerminated) -> None:
        self.ctx.terminate(event.input)

    def _on_execution_suspended(self, event: ExecutionSuspended) -> None:
        self._suspended = True

    def _on_execution_resumed(self, event: ExecutionResumed) -> None:
        self._suspended = False
        buffered, self._suspended_events = self._suspended_events, []
        for pending in buffered:
            self.process(pending)

    # --- scheduled/created: must match what the code scheduled ---

    def _on_task_scheduled(self, event: TaskScheduled) -> None:
        if self.ctx.pop_pending_action(event.event_id) is None:
            raise NonDeterminismError(
                f"A previous execution scheduled activity '{event.name}' with sequence id "
                f"{event.event_id}, but the current orchestrator code did not. "
                "Was the orchestrator changed after this instance started?"
            )

    def _on_timer_created(self, event: TimerCreated) -> None:
        if event.event_id == INFRASTRUCTURE_TIMER_ID:
            return
        if self.ctx.pop_pending_action(event.event_id) is None:
            raise NonDeterminismError(
                f"A previous execution created a timer with id {event.event_id} firing at "
                f"{event.fire_at.isoformat()}, but the current orchestrator code did not. "
                "Was the orchestrator changed after this instance started?"
            )

    def _on_sub_orchestration_created(self, event: SubOrchestrationInstanceCreated) -> None:
        if self.ctx.pop_pending_action(event.event_id) is None:
            raise NonDeterminismError(
                f"A previous execution started sub-orchestration '{event.name}' with sequence id "
                f"{event.event_id}, but the current orchestrator code did not. "
                "Was the orchestrator changed after this instance started?"
            )

    def _on_event_sent(self, event: EventSent) -> None:
        self.ctx.pop_pending_action(event.event_id)

    # --- completions ---

    def _on_task_completed(self, event: TaskCompleted | SubOrchestrationInstanceCompleted) -> None:
        task = self.ctx.pop_pending_task(event.task_scheduled_id)
        if task is None:
            self._discard_duplicate(type(event).__name__, event.task_scheduled_id)
            return
        task.complete(self.ctx.deserialize(event.result))
        self.ctx.resume()

    def _on_task_failed(self, event: TaskFailed | SubOrchestrationInstanceFailed) -> None:
        task = self.ctx.pop_pending_task(event.task_scheduled_id)
        if task is None:
            self._discard_duplicate(type(event).__name__, event.task_scheduled_id)
            return
        name = task.name
        failure = TaskFailedError(
            f"Task '{name}' (#{event.task_scheduled_id}) failed with an unhandled exception: "
            f"{event.failure.error_message}",
            event.failure,
            task_name=name,
            task_id=event.task_scheduled_id,
        )
        self.ctx.fail_or_retry(task, failure)

    def _on_timer_fired(self, event: TimerFired) -> None:
        task = self.ctx.pop_pending_task(event.timer_id)
        if task is None:
            self._discard_duplicate("TimerFired", event.timer_id)
            return
        if isinstance(task, TimerTask) and task.retryable is not None:
            self.ctx.retry(task.retryable)
            return
        task.complete(None)
        self.ctx.resume()

    def _discard_duplicate(self, event_type: str, task_id: int) -> None:
        if not self.ctx.is_replaying:
            log.warning(
                "orchestration.duplicate_completion_discarded",
                instance_id=self.ctx.instance_id,
                event_type=event_type,
                task_id=task_id,
            )
