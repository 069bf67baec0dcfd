"""
Shared pytest fixtures for taskhub tests.

This module provides:
- Fake completion reporters (recording and failing)
- A registry with the activities most tests need
- An OpenTelemetry tracer backed by an in-memory span exporter
- Log context and structlog cleanup between tests
"""

from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest
import structlog
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from taskhub.core.errors import TransportFailure
from taskhub.execution.registry import Registrations, Registry
from taskhub.framework.logging import clear_context
from taskhub.framework.logging import config as logging_config

from tests._support.fakes import FailingReporter, RecordingReporter


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark tests as unit unless they say otherwise."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def _reset_logging() -> Generator[None, None, None]:
    """Leave the log context and structlog configuration as each test found them."""
    clear_context()
    yield
    clear_context()
    if logging_config._configured:
        structlog.reset_defaults()
        logging_config._configured = False


@pytest.fixture(autouse=True)
def _no_env_file(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Run from an empty directory so a developer's .env never leaks into settings."""
    monkeypatch.chdir(tmp_path)


# =============================================================================
# Reporters
# =============================================================================


@pytest.fixture()
def reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture()
def failing_reporter() -> FailingReporter:
    return FailingReporter(TransportFailure.UNAVAILABLE)


# =============================================================================
# Registrations
# =============================================================================


def _echo(ctx, value):
    return value


def _boom(ctx, value):
    raise ValueError("boom")


def _whoami(ctx, value):
    return {
        "instance_id": ctx.instance_id,
        "task_id": ctx.task_id,
        "task_execution_id": ctx.task_execution_id,
    }


@pytest.fixture()
def registry() -> Registry:
    """Registry with echo, boom and whoami activities."""
    reg = Registry()
    reg.add_activity(_echo, "echo")
    reg.add_activity(_boom, "boom")
    reg.add_activity(_whoami, "whoami")
    return reg


@pytest.fixture()
def registrations(registry: Registry) -> Registrations:
    return registry.freeze()


# =============================================================================
# Tracing
# =============================================================================


@pytest.fixture()
def span_exporter() -> InMemorySpanExporter:
    return InMemorySpanExporter()


@pytest.fixture()
def tracer(span_exporter: InMemorySpanExporter):
    """Tracer whose finished spans land in ``span_exporter``."""
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(span_exporter))
    yield provider.get_tracer("taskhub.tests")
    provider.shutdown()
