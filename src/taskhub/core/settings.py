"""Worker settings.

Configuration is read once from the environment (``TASKHUB_`` prefix) and
an optional ``.env`` file, validated at startup, and handed explicitly to the
worker. Nothing in the execution path reads the environment on its own.

Examples:
    >>> import os
    >>> os.environ["TASKHUB_MAX_WORKERS"] = "8"
    >>> WorkerSettings().max_workers
    8

Tags:
    settings, configuration, pydantic, environment, taskhub
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class WorkerSettings(BaseSettings):
    """Worker configuration.

    Fields
    ──────
    coordinator_url : Base URL of the coordinator completion endpoints
    request_timeout : Seconds before a completion call is abandoned by the client
    max_workers     : Size of the runner thread pool
    tracing_enabled : Install an OpenTelemetry tracer provider
    otlp_endpoint   : OTLP gRPC collector for exported spans
    service_name    : ``service.name`` resource attribute
    log_level       : structlog / stdlib log level
    log_format      : ``json`` or ``console``
    """

    model_config = SettingsConfigDict(
        env_prefix="TASKHUB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Coordinator ──────────────────────────────────────────────
    coordinator_url: str = "http://localhost:4001"
    request_timeout: float = Field(default=30.0, gt=0)

    # ── Execution ────────────────────────────────────────────────
    max_workers: int = Field(default=4, ge=1)

    # ── Observability ────────────────────────────────────────────
    tracing_enabled: bool = False
    otlp_endpoint: str = "http://localhost:4317"
    service_name: str = "taskhub-worker"
    log_level: str = "INFO"
    log_format: Literal["json", "console"] = "console"

    @field_validator("coordinator_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()


@lru_cache
def get_settings() -> WorkerSettings:
    """Get cached settings instance."""
    return WorkerSettings()
