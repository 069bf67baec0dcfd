"""Work runners: one runner per work item, run exactly once.

Each runner owns a single work item end to end: it drives the matching
executor, builds the completion response and hands it to the shared
``CompletionReporter``. There are no retries at this layer; a retry is a new
work item scheduled by the orchestration.

STATE MACHINE
─────────────
::

    CREATED → EXECUTING → SUCCEEDED ┐
                        → FAILED    ┴→ REPORTED → TERMINAL
                                     └─────────────→ TERMINAL (report failed)

Reporting failures are handled asymmetrically:

- ``ActivityRunner`` logs the transport failure and re-raises it. If the
  report went through but the activity raised, the activity's exception is
  re-raised after the report, so the coordinator always learns of the
  failure first.
- ``OrchestratorRunner`` logs the transport failure and returns. The
  coordinator redelivers the work item if it never saw the completion.

Example::

    runner = ActivityRunner(work_item, ActivityExecutor(registrations), reporter, tracer)
    runner.run()
"""

from __future__ import annotations

from contextlib import AbstractContextManager, nullcontext
from enum import Enum
from typing import Any

from opentelemetry.trace import Tracer

from taskhub.core.errors import CompletionReportError
from taskhub.core.models import (
    ActivityResponse,
    ActivityResult,
    ActivityWorkItem,
    FailureDetail,
    OrchestratorResponse,
    OrchestratorWorkItem,
)
from taskhub.core.result import Err, Ok, Result, try_result
from taskhub.execution.activity import ActivityExecutor
from taskhub.execution.reporter import CompletionReporter, log_report_failure
from taskhub.framework.logging import get_logger, push_context
from taskhub.observability.tracing import activity_span
from taskhub.orchestration.executor import OrchestrationExecutor

log = get_logger(__name__)


class RunnerState(str, Enum):
    CREATED = "created"
    EXECUTING = "executing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REPORTED = "reported"
    TERMINAL = "terminal"


class Runner:
    """Base runner: state tracking and the run-once guard."""

    work_item_kind = "unknown"

    def __init__(self, reporter: CompletionReporter) -> None:
        self._reporter = reporter
        self.state = RunnerState.CREATED
        self.transitions: list[RunnerState] = [RunnerState.CREATED]

    def run(self) -> None:
        if self.state is not RunnerState.CREATED:
            raise RuntimeError(f"{type(self).__name__} has already run (state={self.state.value})")
        try:
            self._run()
        finally:
            self._transition(RunnerState.TERMINAL)

    def _run(self) -> None:
        raise NotImplementedError

    def _transition(self, state: RunnerState) -> None:
        self.state = state
        self.transitions.append(state)

    def _report_failed(self, error: CompletionReportError) -> None:
        log_report_failure(error, self._reporter.endpoint, self.work_item_kind)


class ActivityRunner(Runner):
    """Execute one activity work item and report its result."""

    work_item_kind = "activity"

    def __init__(
        self,
        work_item: ActivityWorkItem,
        executor: ActivityExecutor,
        reporter: CompletionReporter,
        tracer: Tracer | None = None,
    ) -> None:
        super().__init__(reporter)
        self.work_item = work_item
        self._executor = executor
        self._tracer = tracer
        self.response: ActivityResponse | None = None

    def _run(self) -> None:
        item = self.work_item
        token = push_context(
            instance_id=item.instance_id,
            work_item_kind=self.work_item_kind,
            task_id=item.task_id,
            activity=item.name,
            task_execution_id=item.task_execution_id or None,
        )
        try:
            with self._span():
                self._execute_and_report()
        finally:
            token.restore()

    def _span(self) -> AbstractContextManager[Any]:
        if self._tracer is None:
            return nullcontext()
        return activity_span(self._tracer, self.work_item)

    def _execute_and_report(self) -> None:
        item = self.work_item
        self._transition(RunnerState.EXECUTING)
        trace_parent = item.parent_trace_context.trace_parent if item.parent_trace_context else None
        outcome: Result[str | None] = try_result(
            lambda: self._executor.execute(
                item.name,
                item.input,
                item.task_execution_id,
                item.task_id,
                instance_id=item.instance_id,
                trace_parent=trace_parent,
            )
        )

        match outcome:
            case Ok(value=output):
                self._transition(RunnerState.SUCCEEDED)
                result = ActivityResult(output=output)
            case Err(error=error):
                self._transition(RunnerState.FAILED)
                log.warning("activity.failed", error_type=type(error).__name__, error=str(error))
                result = ActivityResult(failure=FailureDetail.from_exception(error))

        self.response = ActivityResponse(
            instance_id=item.instance_id,
            task_id=item.task_id,
            result=result,
            completion_token=item.completion_token,
        )
        try:
            self._reporter.complete_activity_task(self.response)
        except CompletionReportError as exc:
            self._report_failed(exc)
            raise
        self._transition(RunnerState.REPORTED)
        log.debug("activity.reported", failed=result.is_failure)

        # Raises the activity's own exception once the coordinator has it
        outcome.unwrap()


class OrchestratorRunner(Runner):
    """Replay one orchestrator work item and report the next actions."""

    work_item_kind = "orchestrator"

    def __init__(
        self,
        work_item: OrchestratorWorkItem,
        executor: OrchestrationExecutor,
        reporter: CompletionReporter,
    ) -> None:
        super().__init__(reporter)
        self.work_item = work_item
        self._executor = executor
        self.response: OrchestratorResponse | None = None

    def _run(self) -> None:
        item = self.work_item
        token = push_context(instance_id=item.instance_id, work_item_kind=self.work_item_kind)
        try:
            self._transition(RunnerState.EXECUTING)
            try:
                result = self._executor.execute(item.past_events, item.new_events, item.instance_id)
            except Exception:
                self._transition(RunnerState.FAILED)
                raise
            self._transition(RunnerState.SUCCEEDED)

            self.response = OrchestratorResponse(
                instance_id=item.instance_id,
                result=result,
                completion_token=item.completion_token,
            )
            try:
                self._reporter.complete_orchestrator_task(self.response)
            except CompletionReportError as exc:
                self._report_failed(exc)
                return
            self._transition(RunnerState.REPORTED)
            log.debug("orchestrator.reported", actions=len(result.actions))
        finally:
            token.restore()
