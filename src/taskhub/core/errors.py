"""
Structured error types for the taskhub worker.

Every error raised by the worker carries a category, an explicit retry flag,
structured context (instance id, task id, activity, endpoint...) and an
optional chained cause. Two families matter most at runtime:

- **Transport errors** raised while reporting a completion to the
  coordinator. They are always a single type, ``CompletionReportError``; the
  reason (unavailable / cancelled / unexpected) is kept as an attribute for
  logging only, so redelivery policy stays entirely on the coordinator side.
- **Task errors** raised inside orchestrations when an awaited activity or
  sub-orchestration failed. ``TaskFailedError`` carries the ``FailureDetail``
  exactly as it was captured at the point of failure.

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                        TaskHubError                           │
        │          (category, retryable, context, cause)                │
        ├──────────────────────────────────────────────────────────────┤
        │  TransientError          ConfigError        RegistrationError │
        │       │                                          │            │
        │  CompletionReportError              ActivityNotFoundError     │
        │                                     OrchestratorNotFoundError │
        │                                     VersionNotRegisteredError │
        │                                                               │
        │  OrchestrationError                                           │
        │       │                                                       │
        │  NonDeterminismError   OrchestrationStateError                │
        │  TaskFailedError ── CompositeTaskFailedError                  │
        │  SagaCompensationError                                        │
        └──────────────────────────────────────────────────────────────┘

Examples:
    >>> error = CompletionReportError("coordinator unavailable", failure=TransportFailure.UNAVAILABLE)
    >>> error.retryable
    True
    >>> error.with_context(instance_id="abc", endpoint="localhost:4001").context.instance_id
    'abc'

Guardrails:
    ❌ DON'T: Distinguish unavailable vs cancelled by exception type
    ✅ DO: Raise CompletionReportError and log the ``failure`` attribute

    ❌ DON'T: Swallow the original transport exception
    ✅ DO: Pass it as cause= for error chaining

Tags:
    error-handling, exception-hierarchy, retry-logic, taskhub
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from taskhub.core.models import FailureDetail


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    # Infrastructure errors (usually transient)
    TRANSPORT = "TRANSPORT"          # Coordinator unreachable, call cancelled

    # Configuration errors (never retryable)
    CONFIG = "CONFIG"                # Missing config, invalid settings
    REGISTRATION = "REGISTRATION"    # Unknown or duplicate activity/orchestrator

    # Application errors
    ACTIVITY = "ACTIVITY"            # User activity code raised
    ORCHESTRATION = "ORCHESTRATION"  # Replay, determinism, task failures

    # Internal errors
    INTERNAL = "INTERNAL"            # Bugs, unexpected state


class TransportFailure(str, Enum):
    """Why a completion call to the coordinator did not go through."""

    UNAVAILABLE = "unavailable"  # Connection refused / coordinator down
    CANCELLED = "cancelled"      # Coordinator dropped the call mid-flight
    UNEXPECTED = "unexpected"    # Anything else


@dataclass
class ErrorContext:
    """
    Structured metadata context for errors.

    Only non-None fields are emitted by ``to_dict()``. Anything that does not
    have a dedicated field goes to ``metadata``.

    Attributes:
        instance_id: Orchestration instance the work item belongs to
        task_id: Sequence id of the activity task
        activity: Activity name
        orchestration: Orchestrator name
        work_item_kind: "activity" or "orchestrator"
        endpoint: Coordinator endpoint identity (host:port)
        metadata: Additional key-value pairs
    """

    instance_id: str | None = None
    task_id: int | None = None
    activity: str | None = None
    orchestration: str | None = None
    work_item_kind: str | None = None
    endpoint: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["instance_id", "task_id", "activity", "orchestration",
                    "work_item_kind", "endpoint"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class TaskHubError(Exception):
    """
    Base exception for all taskhub errors.

    Subclasses set ``default_category`` and ``default_retryable`` to provide
    defaults for their domain; both can be overridden per instance.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> TaskHubError:
        """
        Add context to this error (fluent API).

        Usage:
            raise CompletionReportError("failed").with_context(
                instance_id="abc-123",
                endpoint="localhost:4001",
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# TRANSPORT ERRORS
# =============================================================================


class TransientError(TaskHubError):
    """Temporary error that may succeed on retry."""

    default_category = ErrorCategory.TRANSPORT
    default_retryable = True


class CompletionReportError(TransientError):
    """
    Reporting a completion to the coordinator failed.

    The coordinator being unavailable and the call being cancelled share this
    type; ``failure`` only feeds the log message.
    """

    def __init__(
        self,
        message: str,
        *,
        failure: TransportFailure = TransportFailure.UNEXPECTED,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.failure = failure

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["failure"] = self.failure.value
        return result


# =============================================================================
# CONFIGURATION / REGISTRATION ERRORS (Never Retryable)
# =============================================================================


class ConfigError(TaskHubError):
    """Invalid worker configuration."""

    default_category = ErrorCategory.CONFIG


class RegistrationError(TaskHubError):
    """Invalid or duplicate activity/orchestrator registration."""

    default_category = ErrorCategory.REGISTRATION


class ActivityNotFoundError(RegistrationError):
    """No activity is registered under the requested name."""

    def __init__(self, name: str, **kwargs: Any):
        super().__init__(f"No activity task named '{name}' is registered.", **kwargs)
        self.name = name
        self.context.activity = name


class OrchestratorNotFoundError(RegistrationError):
    """No orchestrator is registered under the requested name."""

    def __init__(self, name: str, **kwargs: Any):
        super().__init__(f"No orchestrator named '{name}' is registered.", **kwargs)
        self.name = name
        self.context.orchestration = name


class VersionNotRegisteredError(RegistrationError):
    """The history asks for an orchestrator version this worker does not have."""

    def __init__(self, name: str, version: str, **kwargs: Any):
        super().__init__(
            f"Version '{version}' of orchestrator '{name}' is not registered.", **kwargs
        )
        self.name = name
        self.version = version


# =============================================================================
# ORCHESTRATION ERRORS
# =============================================================================


class OrchestrationError(TaskHubError):
    """Base for errors raised while replaying an orchestration."""

    default_category = ErrorCategory.ORCHESTRATION


class NonDeterminismError(OrchestrationError):
    """Replayed history does not match what the orchestrator code scheduled."""


class OrchestrationStateError(OrchestrationError):
    """The orchestration context was used in a state that does not allow it."""


class TaskFailedError(OrchestrationError):
    """
    An awaited durable task failed.

    Raised into orchestrator code at the ``yield`` that awaited the task.
    ``details`` is the ``FailureDetail`` reported by the activity (or child
    orchestration) with error type, message and stack trace untouched.
    """

    default_category = ErrorCategory.ACTIVITY

    def __init__(
        self,
        message: str,
        details: FailureDetail,
        *,
        task_name: str | None = None,
        task_id: int | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.details = details
        self.task_name = task_name
        self.task_id = task_id
        self.retryable = not details.non_retriable

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["details"] = self.details.to_dict()
        if self.task_name is not None:
            result["task_name"] = self.task_name
        if self.task_id is not None:
            result["task_id"] = self.task_id
        return result


class CompositeTaskFailedError(OrchestrationError):
    """One or more children of a ``when_all`` task failed."""

    def __init__(self, message: str, exceptions: list[BaseException], **kwargs: Any):
        super().__init__(message, **kwargs)
        self.exceptions = exceptions


class SagaCompensationError(OrchestrationError):
    """A saga compensation failed and the saga was told not to continue."""

    def __init__(self, message: str, failures: list[FailureDetail], **kwargs: Any):
        super().__init__(message, **kwargs)
        self.failures = failures
