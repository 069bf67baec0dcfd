"""Saga: forward steps with compensations run in reverse on failure.

A saga is ordinary orchestrator code. Each forward step is an activity call;
after it succeeds its compensation token goes onto a ``CompensationLedger``.
When a forward step fails the ledger is drained last-in-first-out and each
compensation activity is called with the compensation retry policy.

ARCHITECTURE
────────────
::

    Saga.run(steps)                       (driven with ``yield from``)
      ├── step A ok  → ledger: [undo_a]
      ├── step B ok  → ledger: [undo_a, undo_b]
      ├── step C err → compensate(): undo_b, undo_a
      └── SagaOutcome(results, failure, compensated, compensation_failures)

    SagaOptions
      ├── parallel_compensation  ─ undo in when_all batches of max_parallel
      └── continue_with_error    ─ False: stop at the first failed undo and
                                   raise SagaCompensationError

Forward work that is not a single activity call (a sub-orchestration, a
fan-out) registers its own compensation with ``register_compensation`` and
drains the ledger with ``yield from saga.compensate()``.

The ledger lives only in the orchestrator's local state. Replaying the same
history rebuilds the same ledger, so it is never persisted.

Example::

    def book_trip(ctx, trip):
        saga = Saga(ctx, compensation_retry_policy=RetryPolicy(max_number_of_attempts=3))
        outcome = yield from saga.run([
            SagaStep("reserve_flight", "cancel_flight", input=trip),
            SagaStep("reserve_hotel", "cancel_hotel", input=trip),
            SagaStep("charge_card", "refund_card", input=trip),
        ])
        if outcome.aborted:
            return {"status": "rolled_back", "error": outcome.failure.error_message}
        return {"status": "booked", "confirmations": list(outcome.results)}
"""

from __future__ import annotations

from collections.abc import Generator, Iterable
from dataclasses import dataclass, field
from typing import Any

from taskhub.core.errors import CompositeTaskFailedError, SagaCompensationError, TaskFailedError
from taskhub.core.models import FailureDetail
from taskhub.execution.retry import RetryPolicy
from taskhub.framework.logging import get_logger
from taskhub.orchestration.context import OrchestrationContext
from taskhub.orchestration.task import Task

log = get_logger(__name__)

Compensation = tuple[tuple[str, ...], tuple[FailureDetail, ...]]


@dataclass(frozen=True, slots=True)
class CompensationEntry:
    token: str
    input: Any = None


class CompensationLedger:
    """Append-only list of compensation tokens, drained in reverse."""

    def __init__(self) -> None:
        self._entries: list[CompensationEntry] = []

    def record(self, token: str, input: Any = None) -> None:
        if not token:
            raise ValueError("A compensation token is required")
        self._entries.append(CompensationEntry(token, input))

    @property
    def tokens(self) -> tuple[str, ...]:
        return tuple(entry.token for entry in self._entries)

    def drain(self) -> list[CompensationEntry]:
        """Remove and return every entry, most recent first."""
        entries = list(reversed(self._entries))
        self._entries.clear()
        return entries

    def __len__(self) -> int:
        return len(self._entries)


@dataclass(frozen=True)
class SagaOptions:
    """How a saga runs its compensations.

    Attributes:
        parallel_compensation: Schedule compensations together in batches of
            ``max_parallel`` (most recent first) instead of one at a time
        max_parallel: Largest batch when compensating in parallel (≥ 1)
        continue_with_error: Keep compensating after a compensation failed.
            When False, a sequential saga stops at the first failure and a
            parallel one stops after the failing batch; both raise
            ``SagaCompensationError``.
    """

    parallel_compensation: bool = False
    max_parallel: int = 16
    continue_with_error: bool = True

    def __post_init__(self) -> None:
        if self.max_parallel < 1:
            raise ValueError("max_parallel must be greater than zero")


@dataclass(frozen=True)
class SagaStep:
    """One forward activity and the activity that undoes it.

    ``compensation`` may be None for a step with nothing to undo. When
    ``compensation_input`` is None the compensation receives the forward
    step's result.
    """

    activity: str
    compensation: str | None = None
    input: Any = None
    compensation_input: Any = None
    retry_policy: RetryPolicy | None = None


@dataclass(frozen=True)
class SagaOutcome:
    results: tuple[Any, ...] = ()
    failure: FailureDetail | None = None
    compensated: tuple[str, ...] = ()
    compensation_failures: tuple[FailureDetail, ...] = field(default_factory=tuple)

    @property
    def aborted(self) -> bool:
        """True when a forward step failed and the saga rolled back."""
        return self.failure is not None


class Saga:
    """Run saga steps inside an orchestrator."""

    def __init__(
        self,
        ctx: OrchestrationContext,
        compensation_retry_policy: RetryPolicy | None = None,
        options: SagaOptions | None = None,
    ) -> None:
        self._ctx = ctx
        self._compensation_retry_policy = compensation_retry_policy
        self.options = options or SagaOptions()
        self.ledger = CompensationLedger()

    def register_compensation(self, token: str, input: Any = None) -> None:
        """Record the compensation activity for forward work that succeeded."""
        self.ledger.record(token, input)

    def run(self, steps: Iterable[SagaStep]) -> Generator[Task[Any], Any, SagaOutcome]:
        results: list[Any] = []
        for step in steps:
            try:
                result = yield self._ctx.call_activity(
                    step.activity, input=step.input, retry_policy=step.retry_policy
                )
            except TaskFailedError as exc:
                compensated, failures = yield from self.compensate()
                return SagaOutcome(
                    results=tuple(results),
                    failure=exc.details,
                    compensated=compensated,
                    compensation_failures=failures,
                )
            results.append(result)
            if step.compensation:
                payload = result if step.compensation_input is None else step.compensation_input
                self.register_compensation(step.compensation, payload)
        return SagaOutcome(results=tuple(results))

    def compensate(self) -> Generator[Task[Any], Any, Compensation]:
        """Drain the ledger, calling every compensation activity.

        Returns the tokens that were compensated and the failures of those
        that were not.

        Raises:
            SagaCompensationError: If a compensation failed and
                ``continue_with_error`` is off.
        """
        entries = self.ledger.drain()
        if self.options.parallel_compensation and len(entries) > 1:
            return (yield from self._compensate_in_parallel(entries))
        return (yield from self._compensate_sequentially(entries))

    def _compensate_sequentially(self, entries: list[CompensationEntry]) -> Generator[Task[Any], Any, Compensation]:
        compensated: list[str] = []
        failures: list[FailureDetail] = []
        for entry in entries:
            try:
                yield self._call(entry)
            except TaskFailedError as exc:
                self._failed(entry, exc.details)
                failures.append(exc.details)
                if not self.options.continue_with_error:
                    raise SagaCompensationError(
                        f"Compensation '{entry.token}' failed: {exc.details.error_message}", failures
                    ) from exc
                continue
            compensated.append(entry.token)
        return tuple(compensated), tuple(failures)

    def _compensate_in_parallel(self, entries: list[CompensationEntry]) -> Generator[Task[Any], Any, Compensation]:
        compensated: list[str] = []
        failures: list[FailureDetail] = []
        size = self.options.max_parallel
        for start in range(0, len(entries), size):
            batch = entries[start:start + size]
            tasks = [self._call(entry) for entry in batch]
            try:
                yield self._ctx.when_all(tasks)
            except CompositeTaskFailedError:
                # Each failed task is reported below
                pass
            for entry, task in zip(batch, tasks):
                if task.is_failed:
                    error = task.get_exception()
                    details = error.details if isinstance(error, TaskFailedError) else FailureDetail.from_exception(error)
                    self._failed(entry, details)
                    failures.append(details)
                else:
                    compensated.append(entry.token)
            if failures and not self.options.continue_with_error:
                raise SagaCompensationError(f"{len(failures)} compensations failed", failures)
        return tuple(compensated), tuple(failures)

    def _call(self, entry: CompensationEntry) -> Task[Any]:
        return self._ctx.call_activity(entry.token, input=entry.input, retry_policy=self._compensation_retry_policy)

    def _failed(self, entry: CompensationEntry, details: FailureDetail) -> None:
        if not self._ctx.is_replaying:
            log.warning(
                "saga.compensation_failed",
                instance_id=self._ctx.instance_id,
                compensation=entry.token,
                error=details.error_message,
            )
