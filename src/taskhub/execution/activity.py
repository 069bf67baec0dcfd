"""Activity executor.

Looks an activity up by name, deserializes its input, calls it, and
serializes what it returns. Failures propagate as exceptions; capturing
them into a ``FailureDetail`` is the runner's job.

An activity is any callable ``fn(ctx, input)``::

    @registry.activity("charge_card")
    def charge_card(ctx: ActivityContext, order: dict) -> dict:
        return payments.charge(order, idempotency_key=ctx.task_execution_id)
"""

from __future__ import annotations

from dataclasses import dataclass

from taskhub.core.codec import DEFAULT_CONVERTER, JsonDataConverter
from taskhub.execution.registry import Registrations
from taskhub.framework.logging import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class ActivityContext:
    """What an activity knows about the invocation it is serving.

    ``task_execution_id`` is opaque correlation data; the worker performs no
    deduplication with it.
    """

    instance_id: str
    task_id: int
    name: str
    task_execution_id: str = ""
    trace_parent: str | None = None


class ActivityExecutor:
    """Invoke registered activities by name."""

    def __init__(
        self,
        registrations: Registrations,
        converter: JsonDataConverter = DEFAULT_CONVERTER,
    ):
        self._registrations = registrations
        self._converter = converter

    def execute(
        self,
        name: str,
        input: str | None,
        task_execution_id: str,
        task_id: int,
        instance_id: str = "",
        trace_parent: str | None = None,
    ) -> str | None:
        """Run one activity and return its serialized output.

        Raises:
            ActivityNotFoundError: If no activity is registered under ``name``.
            Exception: Whatever the activity itself raises.
        """
        fn = self._registrations.get_activity(name)
        ctx = ActivityContext(
            instance_id=instance_id,
            task_id=task_id,
            name=name,
            task_execution_id=task_execution_id,
            trace_parent=trace_parent,
        )
        value = self._converter.deserialize(input)
        log.debug("activity.executing", activity=name, task_id=task_id)
        output = fn(ctx, value)
        return self._converter.serialize(output)
