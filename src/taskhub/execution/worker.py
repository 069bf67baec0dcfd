"""Worker: dispatches coordinator work items to runners on a thread pool.

The coordinator delivers a stream of work items. For each one the worker
builds a fresh runner and submits it to a ``ThreadPoolExecutor``; runners
share nothing but the completion reporter, whose HTTP client is thread-safe.

The coordinator never dispatches two orchestrator work items for the same
instance at once, so the worker does no per-instance locking.

Usage::

    from taskhub.execution.registry import Registry
    from taskhub.execution.worker import TaskHubWorker

    registry = Registry()

    @registry.activity("echo")
    def echo(ctx, value):
        return value

    with TaskHubWorker.from_settings(registry.freeze()) as worker:
        worker.process(stream_of_work_items)
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any

from opentelemetry.trace import Tracer

from taskhub.core.codec import DEFAULT_CONVERTER, JsonDataConverter, decode_work_item
from taskhub.core.models import ActivityWorkItem, HealthPing, OrchestratorWorkItem, WorkItem
from taskhub.core.settings import WorkerSettings, get_settings
from taskhub.execution.activity import ActivityExecutor
from taskhub.execution.registry import Registrations
from taskhub.execution.reporter import CompletionReporter, HttpCompletionReporter
from taskhub.execution.runners import ActivityRunner, OrchestratorRunner, Runner
from taskhub.framework.logging import clear_context, configure_logging, get_logger
from taskhub.observability.tracing import configure_tracing
from taskhub.orchestration.executor import OrchestrationExecutor

log = get_logger(__name__)


def parse_work_item(data: dict[str, Any]) -> WorkItem:
    """Decode one JSON work item from the coordinator.

    Raises:
        ValueError: If the payload has an unknown ``type``.
    """
    return decode_work_item(data)


@dataclass
class WorkerStats:
    """Runner counts since the worker started."""

    dispatched: int = 0
    completed: int = 0
    failed: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "dispatched": self.dispatched,
            "completed": self.completed,
            "failed": self.failed,
        }


class TaskHubWorker:
    """Runs activity and orchestrator work items against one set of registrations."""

    def __init__(
        self,
        registrations: Registrations,
        reporter: CompletionReporter | None = None,
        settings: WorkerSettings | None = None,
        tracer: Tracer | None = None,
        converter: JsonDataConverter = DEFAULT_CONVERTER,
    ):
        """
        Args:
            registrations: Frozen activity and orchestrator registrations.
            reporter: Completion reporter shared by all runners. If ``None``,
                an ``HttpCompletionReporter`` is built from *settings* and
                closed by ``stop()``.
            settings: Worker settings. Defaults to ``get_settings()``.
            tracer: Tracer for activity spans, or ``None`` for no spans.
        """
        self._settings = settings or get_settings()
        if reporter is None:
            self._reporter: CompletionReporter = HttpCompletionReporter.from_settings(self._settings)
            self._owns_reporter = True
        else:
            self._reporter = reporter
            self._owns_reporter = False
        self._tracer = tracer
        self._activity_executor = ActivityExecutor(registrations, converter)
        self._orchestration_executor = OrchestrationExecutor(registrations, converter)
        self._pool = ThreadPoolExecutor(
            max_workers=self._settings.max_workers,
            thread_name_prefix="taskhub-runner",
        )
        self._stats = WorkerStats()
        self._stats_lock = threading.Lock()
        self._stopped = False

    @classmethod
    def from_settings(
        cls,
        registrations: Registrations,
        settings: WorkerSettings | None = None,
    ) -> TaskHubWorker:
        """Build a worker with an HTTP reporter, logging and tracing as configured."""
        settings = settings or get_settings()
        configure_logging(level=settings.log_level, format=settings.log_format)
        return cls(registrations, settings=settings, tracer=configure_tracing(settings))

    @property
    def reporter(self) -> CompletionReporter:
        return self._reporter

    def get_stats(self) -> WorkerStats:
        with self._stats_lock:
            return WorkerStats(self._stats.dispatched, self._stats.completed, self._stats.failed)

    # ------------------------------------------------------------------ #
    # Dispatch
    # ------------------------------------------------------------------ #

    def submit(self, work_item: ActivityWorkItem | OrchestratorWorkItem) -> Future[Runner]:
        """Run ``work_item`` on the pool. The future resolves to its runner."""
        if self._stopped:
            raise RuntimeError("The worker has been stopped")
        runner = self._make_runner(work_item)
        with self._stats_lock:
            self._stats.dispatched += 1
        return self._pool.submit(self._run, runner)

    def process(self, work_items: Iterable[WorkItem | dict[str, Any]]) -> list[Future[Runner]]:
        """Dispatch every item of a work item stream.

        Raw dicts are decoded first. Health pings are skipped; payloads that
        cannot be decoded or dispatched are dropped with a warning.
        """
        futures: list[Future[Runner]] = []
        for item in work_items:
            if isinstance(item, dict):
                try:
                    item = parse_work_item(item)
                except ValueError as exc:
                    log.warning("worker.work_item_dropped", reason=str(exc))
                    continue
            if isinstance(item, HealthPing):
                continue
            if not isinstance(item, (ActivityWorkItem, OrchestratorWorkItem)):
                log.warning("worker.work_item_dropped", reason=f"unknown work item {type(item).__name__}")
                continue
            futures.append(self.submit(item))
        return futures

    def _make_runner(self, work_item: ActivityWorkItem | OrchestratorWorkItem) -> Runner:
        if isinstance(work_item, ActivityWorkItem):
            return ActivityRunner(work_item, self._activity_executor, self._reporter, self._tracer)
        return OrchestratorRunner(work_item, self._orchestration_executor, self._reporter)

    def _run(self, runner: Runner) -> Runner:
        # Pool threads are reused; start each runner from an empty log context
        clear_context()
        try:
            runner.run()
        except Exception as exc:
            with self._stats_lock:
                self._stats.failed += 1
            log.warning(
                "worker.runner_failed",
                work_item_kind=runner.work_item_kind,
                instance_id=runner.work_item.instance_id,  # type: ignore[attr-defined]
                error_type=type(exc).__name__,
                error=str(exc),
            )
        else:
            with self._stats_lock:
                self._stats.completed += 1
        return runner

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def stop(self, wait: bool = True) -> None:
        """Stop accepting work, let in-flight runners finish, release the reporter."""
        if self._stopped:
            return
        self._stopped = True
        self._pool.shutdown(wait=wait)
        if self._owns_reporter and isinstance(self._reporter, HttpCompletionReporter):
            self._reporter.close()
        stats = self.get_stats()
        log.info("worker.stopped", **stats.to_dict())

    def __enter__(self) -> TaskHubWorker:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.stop()
