"""Tests for the activity executor."""

import pytest

from taskhub.core.errors import ActivityNotFoundError
from taskhub.execution.activity import ActivityExecutor


class TestActivityExecutor:
    def test_echo_round_trip(self, registrations):
        executor = ActivityExecutor(registrations)
        assert executor.execute("echo", '"hi"', "exec-1", 1) == '"hi"'

    def test_none_input_and_output(self, registrations):
        assert ActivityExecutor(registrations).execute("echo", None, "exec-1", 1) is None

    def test_context_is_passed(self, registrations):
        output = ActivityExecutor(registrations).execute("whoami", None, "exec-7", 5, instance_id="inst")
        assert '"task_execution_id": "exec-7"' in output
        assert '"instance_id": "inst"' in output
        assert '"task_id": 5' in output

    def test_failure_propagates(self, registrations):
        """Capturing the failure is the runner's job, not the executor's."""
        with pytest.raises(ValueError, match="boom"):
            ActivityExecutor(registrations).execute("boom", None, "", 1)

    def test_unknown_activity(self, registrations):
        with pytest.raises(ActivityNotFoundError):
            ActivityExecutor(registrations).execute("missing", None, "", 1)
