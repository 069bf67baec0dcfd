"""
Logging context management using contextvars.

Runners bind the identity of the work item they own (instance id, task id,
activity or orchestration name) for the duration of one execution. Every log
entry emitted on that thread, including the ones from user activity code
that logs through ``get_logger``, picks the fields up automatically.

Runners execute on pool threads; each submitted runner starts from an empty
context, so no fields leak from one work item to the next.
"""

from contextvars import ContextVar, Token
from dataclasses import asdict, dataclass
from typing import Any

import structlog


@dataclass
class LogContext:
    """
    Work item context attached to all log entries.

    Identity:
        instance_id: Orchestration instance id
        work_item_kind: "activity" or "orchestrator"

    Activity:
        task_id: Sequence id of the scheduled task
        activity: Activity name
        task_execution_id: Opaque attempt correlation id

    Orchestration:
        orchestration: Orchestrator name

    Retry:
        attempt: Attempt number (default 1)
    """

    instance_id: str | None = None
    work_item_kind: str | None = None

    task_id: int | None = None
    activity: str | None = None
    task_execution_id: str | None = None

    orchestration: str | None = None

    attempt: int = 1

    def to_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict (excludes attempt=1 default)."""
        result = {}
        for k, v in asdict(self).items():
            if v is None:
                continue
            if k == "attempt" and v == 1:
                continue
            result[k] = v
        return result

    def merge(self, **kwargs) -> "LogContext":
        """Create new context with merged values."""
        current = asdict(self)
        current.update({k: v for k, v in kwargs.items() if v is not None})
        return LogContext(**current)


_log_context: ContextVar[LogContext] = ContextVar("taskhub_log_context")  # noqa: B039


def get_context() -> LogContext:
    """Get the current log context."""
    return _log_context.get(LogContext())


def clear_context() -> None:
    """Clear the current context (reset to empty)."""
    _log_context.set(LogContext())


class ContextToken:
    """Token for restoring context after a scoped operation."""

    def __init__(self, token: Token):
        self._token = token

    def restore(self) -> None:
        """Restore the previous context."""
        _log_context.reset(self._token)


def push_context(**kwargs) -> ContextToken:
    """
    Push new context values, returning a token to restore later.

    Usage:
        token = push_context(instance_id=item.instance_id, task_id=item.task_id)
        try:
            run()
        finally:
            token.restore()
    """
    updated = get_context().merge(**kwargs)
    return ContextToken(_log_context.set(updated))


def add_context_processor(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Structlog processor that adds the work item context to every entry."""
    for key, value in get_context().to_dict().items():
        if key not in event_dict:
            event_dict[key] = value
    return event_dict


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger (typically ``get_logger(__name__)``)."""
    return structlog.get_logger(name)
