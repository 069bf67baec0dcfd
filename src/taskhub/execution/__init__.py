"""
Taskhub Execution - registration, retry policy, executors and dispatch.

Runners and the worker depend on the orchestration package; import them
from their modules to avoid circular imports:

    from taskhub.execution.runners import ActivityRunner, OrchestratorRunner
    from taskhub.execution.worker import TaskHubWorker
"""

from taskhub.execution.activity import ActivityContext, ActivityExecutor
from taskhub.execution.registry import Registrations, Registry
from taskhub.execution.reporter import (
    CompletionReporter,
    HttpCompletionReporter,
    classify_transport_error,
)
from taskhub.execution.retry import GIVE_UP, GiveUp, RetryPolicy, next_delay

__all__ = [
    "ActivityContext",
    "ActivityExecutor",
    "Registry",
    "Registrations",
    "CompletionReporter",
    "HttpCompletionReporter",
    "classify_transport_error",
    "RetryPolicy",
    "GiveUp",
    "GIVE_UP",
    "next_delay",
]
