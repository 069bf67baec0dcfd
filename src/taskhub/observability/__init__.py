"""Taskhub Observability - OpenTelemetry tracing for activity execution."""

from taskhub.observability.tracing import activity_span, configure_tracing, extract_parent_context

__all__ = ["activity_span", "configure_tracing", "extract_parent_context"]
