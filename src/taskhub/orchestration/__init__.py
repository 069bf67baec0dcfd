"""
Taskhub Orchestration - deterministic replay of orchestrator functions.
"""

from taskhub.orchestration.context import OrchestrationContext
from taskhub.orchestration.executor import OrchestrationExecutor
from taskhub.orchestration.saga import CompensationLedger, Saga, SagaOptions, SagaOutcome, SagaStep
from taskhub.orchestration.task import Task, when_all, when_any

__all__ = [
    "OrchestrationContext",
    "OrchestrationExecutor",
    "Task",
    "when_all",
    "when_any",
    "CompensationLedger",
    "Saga",
    "SagaStep",
    "SagaOutcome",
    "SagaOptions",
]
