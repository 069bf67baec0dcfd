"""
Taskhub - durable orchestration worker.

Receives work items from a task hub coordinator, replays orchestrators
deterministically over their history, runs activities, and reports the
results back over the completion protocol.

Packages:
- taskhub.core: errors, models, history events, actions, codec, settings
- taskhub.execution: registry, retry policy, executors, runners, worker
- taskhub.orchestration: replay context, durable tasks, saga helper
- taskhub.observability: OpenTelemetry tracing
- taskhub.framework.logging: structlog configuration and log context
"""

__version__ = "0.1.0"

from taskhub.core.errors import TaskFailedError, TaskHubError
from taskhub.core.models import FailureDetail, OrchestrationStatus
from taskhub.execution.activity import ActivityContext
from taskhub.execution.registry import Registrations, Registry
from taskhub.execution.retry import GIVE_UP, RetryPolicy, next_delay
from taskhub.orchestration.context import OrchestrationContext
from taskhub.orchestration.saga import Saga, SagaOptions, SagaOutcome, SagaStep
from taskhub.execution.worker import TaskHubWorker

__all__ = [
    "__version__",
    # Errors
    "TaskHubError",
    "TaskFailedError",
    # Models
    "FailureDetail",
    "OrchestrationStatus",
    # Authoring
    "ActivityContext",
    "OrchestrationContext",
    "Registry",
    "Registrations",
    "RetryPolicy",
    "GIVE_UP",
    "next_delay",
    "Saga",
    "SagaStep",
    "SagaOutcome",
    "SagaOptions",
    # Worker
    "TaskHubWorker",
]
