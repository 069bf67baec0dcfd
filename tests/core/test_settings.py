"""Tests for environment driven worker settings."""

import pytest
from pydantic import ValidationError

from taskhub.core.settings import WorkerSettings


class TestWorkerSettings:
    def test_defaults(self, monkeypatch):
        for key in ("TASKHUB_COORDINATOR_URL", "TASKHUB_MAX_WORKERS", "TASKHUB_LOG_LEVEL"):
            monkeypatch.delenv(key, raising=False)
        settings = WorkerSettings()
        assert settings.coordinator_url == "http://localhost:4001"
        assert settings.max_workers == 4
        assert settings.tracing_enabled is False
        assert settings.log_format == "console"

    def test_reads_prefixed_environment(self, monkeypatch):
        monkeypatch.setenv("TASKHUB_MAX_WORKERS", "8")
        monkeypatch.setenv("TASKHUB_TRACING_ENABLED", "true")
        settings = WorkerSettings()
        assert settings.max_workers == 8
        assert settings.tracing_enabled is True

    def test_reads_env_file(self, tmp_path):
        """The autouse fixture runs each test from tmp_path, so .env is found there."""
        (tmp_path / ".env").write_text("TASKHUB_SERVICE_NAME=billing-worker\n")
        assert WorkerSettings().service_name == "billing-worker"

    def test_normalizes_values(self):
        settings = WorkerSettings(coordinator_url="http://hub:4001/", log_level="debug")
        assert settings.coordinator_url == "http://hub:4001"
        assert settings.log_level == "DEBUG"

    @pytest.mark.parametrize("field,value", [("max_workers", 0), ("request_timeout", 0), ("log_format", "xml")])
    def test_rejects_invalid(self, field, value):
        with pytest.raises(ValidationError):
            WorkerSettings(**{field: value})
