"""Tests for activity and orchestrator registration."""

import pytest

from taskhub.core.errors import (
    ActivityNotFoundError,
    OrchestratorNotFoundError,
    RegistrationError,
    VersionNotRegisteredError,
)
from taskhub.execution.registry import Registry


def flow_v1(ctx, _):
    return "v1"


def flow_v2(ctx, _):
    return "v2"


class TestActivities:
    def test_decorator_uses_function_name(self):
        registry = Registry()

        @registry.activity()
        def charge_card(ctx, order):
            return order

        assert registry.freeze().get_activity("charge_card") is charge_card

    def test_explicit_name(self):
        registry = Registry()
        registry.add_activity(lambda ctx, v: v, "echo")
        registrations = registry.freeze()
        assert registrations.has_activity("echo")
        assert not registrations.has_activity("<lambda>")

    def test_duplicate_rejected(self):
        registry = Registry()
        registry.add_activity(flow_v1, "a")
        with pytest.raises(RegistrationError, match="already registered"):
            registry.add_activity(flow_v2, "a")

    def test_unknown_activity(self):
        with pytest.raises(ActivityNotFoundError):
            Registry().freeze().get_activity("missing")


class TestOrchestrators:
    def test_unversioned(self):
        registry = Registry()
        registry.add_orchestrator(flow_v1, "flow")
        assert registry.freeze().get_orchestrator("flow") == (None, flow_v1)

    def test_latest_version_is_default(self):
        registry = Registry()
        registry.add_orchestrator(flow_v1, "flow", version="v1")
        registry.add_orchestrator(flow_v2, "flow", version="v2", is_latest=True)
        registrations = registry.freeze()
        assert registrations.get_orchestrator("flow") == ("v2", flow_v2)
        assert registrations.get_orchestrator("flow", "v1") == ("v1", flow_v1)

    def test_unknown_version(self):
        registry = Registry()
        registry.add_orchestrator(flow_v1, "flow", version="v1", is_latest=True)
        with pytest.raises(VersionNotRegisteredError):
            registry.freeze().get_orchestrator("flow", "v9")

    def test_versions_without_latest_or_default(self):
        registry = Registry()
        registry.add_orchestrator(flow_v1, "flow", version="v1")
        with pytest.raises(VersionNotRegisteredError):
            registry.freeze().get_orchestrator("flow")

    def test_unknown_orchestrator(self):
        with pytest.raises(OrchestratorNotFoundError):
            Registry().freeze().get_orchestrator("missing")

    def test_latest_requires_version(self):
        with pytest.raises(RegistrationError):
            Registry().add_orchestrator(flow_v1, "flow", is_latest=True)

    def test_single_latest(self):
        registry = Registry()
        registry.add_orchestrator(flow_v1, "flow", version="v1", is_latest=True)
        with pytest.raises(RegistrationError, match="already has latest"):
            registry.add_orchestrator(flow_v2, "flow", version="v2", is_latest=True)

    def test_duplicate_version(self):
        registry = Registry()
        registry.add_orchestrator(flow_v1, "flow", version="v1")
        with pytest.raises(RegistrationError):
            registry.add_orchestrator(flow_v2, "flow", version="v1")


class TestFreeze:
    def test_snapshot_is_independent_of_builder(self):
        """Registrations are resolved once and never change afterwards."""
        registry = Registry()
        registry.add_activity(flow_v1, "a")
        registrations = registry.freeze()
        registry.add_activity(flow_v2, "b")
        assert not registrations.has_activity("b")

    def test_snapshot_is_read_only(self):
        registrations = Registry().freeze()
        with pytest.raises(TypeError):
            registrations.activities["x"] = flow_v1  # type: ignore[index]
