"""Tests for structured logging configuration and work item context."""

import structlog
from structlog.testing import capture_logs

from taskhub.framework.logging import (
    LogContext,
    clear_context,
    configure_logging,
    get_context,
    get_logger,
    push_context,
)
from taskhub.framework.logging import config as logging_config
from taskhub.framework.logging.context import add_context_processor


class TestLogContext:
    def test_to_dict_skips_unset_fields(self):
        ctx = LogContext(instance_id="abc", task_id=0)

        assert ctx.to_dict() == {"instance_id": "abc", "task_id": 0}

    def test_to_dict_keeps_non_default_attempt(self):
        assert LogContext(attempt=3).to_dict() == {"attempt": 3}

    def test_merge_ignores_none(self):
        merged = LogContext(instance_id="abc").merge(activity="charge", instance_id=None)

        assert merged.to_dict() == {"instance_id": "abc", "activity": "charge"}


class TestContextVars:
    def test_push_merges(self):
        push_context(instance_id="abc")
        push_context(activity="charge")

        assert get_context().to_dict() == {"instance_id": "abc", "activity": "charge"}

    def test_clear(self):
        push_context(instance_id="abc")

        clear_context()

        assert get_context().to_dict() == {}

    def test_push_restores(self):
        push_context(instance_id="abc")

        token = push_context(task_id=7)
        assert get_context().task_id == 7
        token.restore()

        assert get_context().to_dict() == {"instance_id": "abc"}

    def test_processor_does_not_overwrite_explicit_fields(self):
        push_context(instance_id="abc", activity="charge")

        event = add_context_processor(None, "info", {"event": "x", "activity": "refund"})

        assert event == {"event": "x", "activity": "refund", "instance_id": "abc"}


class TestConfigureLogging:
    def test_json_renderer(self):
        configure_logging(level="DEBUG", format="json")

        assert logging_config._configured
        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.processors.JSONRenderer)
        assert add_context_processor in processors

    def test_second_call_is_a_no_op(self):
        configure_logging(format="json")
        configure_logging(format="console")

        assert isinstance(structlog.get_config()["processors"][-1], structlog.processors.JSONRenderer)

    def test_force_reconfigures(self):
        configure_logging(format="json")
        configure_logging(format="console", force=True)

        assert isinstance(structlog.get_config()["processors"][-1], structlog.dev.ConsoleRenderer)

    def test_environment_format(self, monkeypatch):
        monkeypatch.setenv("TASKHUB_LOG_FORMAT", "json")

        configure_logging()

        assert isinstance(structlog.get_config()["processors"][-1], structlog.processors.JSONRenderer)


def test_get_logger_emits_structured_events():
    with capture_logs() as logs:
        get_logger("taskhub.tests").info("worker.started", max_workers=4)

    assert logs == [{"event": "worker.started", "max_workers": 4, "log_level": "info"}]
