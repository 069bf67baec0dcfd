"""
Taskhub Core - data model and wire format shared by every layer.

Nothing in this package executes user code; it defines what flows between
the coordinator, the executors and the runners.
"""

from taskhub.core.errors import (
    ActivityNotFoundError,
    CompletionReportError,
    ErrorCategory,
    NonDeterminismError,
    OrchestrationStateError,
    OrchestratorNotFoundError,
    SagaCompensationError,
    TaskFailedError,
    TaskHubError,
    TransportFailure,
    VersionNotRegisteredError,
)
from taskhub.core.models import (
    ActivityResponse,
    ActivityResult,
    ActivityWorkItem,
    FailureDetail,
    HealthPing,
    OrchestrationStatus,
    OrchestrationVersion,
    OrchestratorResponse,
    OrchestratorResult,
    OrchestratorWorkItem,
    TraceContext,
)
from taskhub.core.result import Err, Ok, Result, try_result

__all__ = [
    # Errors
    "TaskHubError",
    "ErrorCategory",
    "TransportFailure",
    "CompletionReportError",
    "ActivityNotFoundError",
    "OrchestratorNotFoundError",
    "VersionNotRegisteredError",
    "NonDeterminismError",
    "OrchestrationStateError",
    "TaskFailedError",
    "SagaCompensationError",
    # Models
    "FailureDetail",
    "TraceContext",
    "OrchestrationStatus",
    "OrchestrationVersion",
    "OrchestratorWorkItem",
    "ActivityWorkItem",
    "HealthPing",
    "OrchestratorResult",
    "ActivityResult",
    "ActivityResponse",
    "OrchestratorResponse",
    # Result
    "Ok",
    "Err",
    "Result",
    "try_result",
]
