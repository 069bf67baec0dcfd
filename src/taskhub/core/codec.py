"""JSON payload conversion and the coordinator wire codec.

Two concerns live here:

- ``JsonDataConverter`` turns user values (activity inputs/outputs,
  orchestration results, custom status) into the opaque string payloads that
  travel inside work items and actions, and back.
- The wire codec turns history events, actions, work items and responses
  into plain dicts (snake_case keys, ISO-8601 datetimes, base64 completion
  tokens) ready for ``json.dumps``, and decodes work items received from the
  coordinator.

Example:
    >>> DEFAULT_CONVERTER.serialize({"a": 1})
    '{"a": 1}'
    >>> DEFAULT_CONVERTER.deserialize('{"a": 1}')
    {'a': 1}
"""

from __future__ import annotations

import base64
import dataclasses
import json
from datetime import datetime
from enum import Enum
from typing import Any

from taskhub.core.actions import ACTION_TYPES, Action
from taskhub.core.history import EVENT_TYPES, HistoryEvent
from taskhub.core.models import (
    ActivityResponse,
    ActivityWorkItem,
    FailureDetail,
    HealthPing,
    OrchestrationStatus,
    OrchestrationVersion,
    OrchestratorResponse,
    OrchestratorWorkItem,
    TraceContext,
)


class JsonDataConverter:
    """Serialize user payloads to JSON strings.

    ``None`` maps to ``None`` in both directions so that "no input" and "no
    output" stay distinguishable from the JSON literal ``null``.
    Dataclasses are emitted as dicts and datetimes as ISO strings.
    """

    def serialize(self, value: Any) -> str | None:
        if value is None:
            return None
        return json.dumps(value, default=self._default)

    def deserialize(self, data: str | None) -> Any:
        if data is None or data == "":
            return None
        return json.loads(data)

    @staticmethod
    def _default(value: Any) -> Any:
        if dataclasses.is_dataclass(value) and not isinstance(value, type):
            return dataclasses.asdict(value)
        if isinstance(value, datetime):
            return value.isoformat()
        if isinstance(value, Enum):
            return value.value
        if isinstance(value, (set, frozenset, tuple)):
            return list(value)
        raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


DEFAULT_CONVERTER = JsonDataConverter()


# =============================================================================
# WIRE ENCODING
# =============================================================================


def encode_token(token: bytes) -> str:
    return base64.b64encode(token).decode("ascii")


def decode_token(value: str | None) -> bytes:
    if not value:
        return b""
    return base64.b64decode(value)


def _encode_value(value: Any) -> Any:
    if isinstance(value, HistoryEvent):
        return encode_event(value)
    if isinstance(value, FailureDetail):
        return value.to_dict()
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, bytes):
        return encode_token(value)
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [_encode_value(v) for v in value]
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _encode_fields(value)
    return value


def _encode_fields(obj: Any) -> dict[str, Any]:
    result: dict[str, Any] = {}
    for f in dataclasses.fields(obj):
        value = getattr(obj, f.name)
        if value is None:
            continue
        result[f.name] = _encode_value(value)
    return result


def encode_event(event: HistoryEvent) -> dict[str, Any]:
    """Encode a history event as ``{"type": <ClassName>, ...fields}``."""
    return {"type": type(event).__name__, **_encode_fields(event)}


def encode_action(action: Action) -> dict[str, Any]:
    """Encode an action as ``{"type": <ClassName>, ...fields}``."""
    return {"type": type(action).__name__, **_encode_fields(action)}


def encode_activity_response(response: ActivityResponse) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "instance_id": response.instance_id,
        "task_id": response.task_id,
        "completion_token": encode_token(response.completion_token),
    }
    if response.result.output is not None:
        payload["result"] = response.result.output
    if response.result.failure is not None:
        payload["failure_details"] = response.result.failure.to_dict()
    return payload


def encode_orchestrator_response(response: OrchestratorResponse) -> dict[str, Any]:
    result = response.result
    payload: dict[str, Any] = {
        "instance_id": response.instance_id,
        "actions": [encode_action(a) for a in result.actions],
        "completion_token": encode_token(response.completion_token),
    }
    if result.custom_status is not None:
        payload["custom_status"] = result.custom_status
    if result.version is not None:
        payload["version"] = {
            "name": result.version.name,
            "patches": list(result.version.patches),
        }
    return payload


# =============================================================================
# WIRE DECODING
# =============================================================================


def _parse_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


def _decode_version(value: Any) -> Any:
    # OrchestratorStarted carries a {name, patches} object, ExecutionStarted a plain name
    if isinstance(value, dict):
        return OrchestrationVersion(
            name=value.get("name"),
            patches=tuple(value.get("patches") or ()),
        )
    return value


def _decode_trace_context(value: dict[str, Any] | None) -> TraceContext | None:
    if not value or not value.get("trace_parent"):
        return None
    return TraceContext(
        trace_parent=value["trace_parent"],
        trace_state=value.get("trace_state"),
    )


_FIELD_DECODERS = {
    "timestamp": _parse_datetime,
    "fire_at": _parse_datetime,
    "failure": FailureDetail.from_dict,
    "status": OrchestrationStatus,
    "version": _decode_version,
    "parent_trace_context": _decode_trace_context,
    "carryover_events": lambda values: tuple(decode_event(v) for v in values),
}


def _decode_fields(cls: type, data: dict[str, Any]) -> dict[str, Any]:
    names = {f.name for f in dataclasses.fields(cls)}
    kwargs = {}
    for key, value in data.items():
        if key not in names:
            continue
        decoder = _FIELD_DECODERS.get(key)
        kwargs[key] = decoder(value) if decoder is not None and value is not None else value
    return kwargs


def decode_event(data: dict[str, Any]) -> HistoryEvent:
    """Decode one history event.

    Raises:
        ValueError: If ``type`` does not name a known event or a required
            field is missing or malformed.
    """
    event_type = data.get("type")
    cls = EVENT_TYPES.get(event_type)
    if cls is None:
        raise ValueError(f"Unknown history event type: {event_type!r}")
    try:
        return cls(**_decode_fields(cls, data))
    except (KeyError, TypeError, ValueError) as exc:
        raise ValueError(f"Invalid {event_type} event: {exc}") from exc


def decode_action(data: dict[str, Any]) -> Action:
    action_type = data.get("type")
    cls = ACTION_TYPES.get(action_type)
    if cls is None:
        raise ValueError(f"Unknown action type: {action_type!r}")
    return cls(**_decode_fields(cls, data))


def decode_work_item(data: dict[str, Any]) -> OrchestratorWorkItem | ActivityWorkItem | HealthPing:
    """Decode a work item delivered by the coordinator.

    Raises:
        ValueError: If ``type`` is not ``orchestrator``, ``activity`` or
            ``health_ping``, or a required field is missing or
            malformed.
    """
    kind = data.get("type")
    try:
        return _decode_work_item(kind, data)
    except KeyError as exc:
        raise ValueError(f"Work item of type {kind!r} is missing required field {exc.args[0]!r}") from exc
    except TypeError as exc:
        raise ValueError(f"Invalid work item of type {kind!r}: {exc}") from exc


def _decode_work_item(kind: Any, data: dict[str, Any]) -> OrchestratorWorkItem | ActivityWorkItem | HealthPing:
    if kind == OrchestratorWorkItem.kind:
        return OrchestratorWorkItem(
            instance_id=data["instance_id"],
            past_events=tuple(decode_event(e) for e in data.get("past_events") or ()),
            new_events=tuple(decode_event(e) for e in data.get("new_events") or ()),
            completion_token=decode_token(data.get("completion_token")),
        )
    if kind == ActivityWorkItem.kind:
        return ActivityWorkItem(
            instance_id=data["instance_id"],
            task_id=int(data["task_id"]),
            name=data["name"],
            input=data.get("input"),
            task_execution_id=data.get("task_execution_id") or "",
            parent_trace_context=_decode_trace_context(data.get("parent_trace_context")),
            completion_token=decode_token(data.get("completion_token")),
        )
    if kind == HealthPing.kind:
        return HealthPing()
    raise ValueError(f"Unknown work item type: {kind!r}")
