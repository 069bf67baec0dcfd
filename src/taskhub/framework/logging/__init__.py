"""
Taskhub Logging - Structured, work-item-aware logging.

This module provides:
- Structured logging with structlog
- Work item context propagation via contextvars
- Environment-based configuration

Usage:
    from taskhub.framework.logging import get_logger, configure_logging, push_context

    configure_logging()
    log = get_logger(__name__)

    token = push_context(instance_id="abc-123", activity="charge_card")
    try:
        log.info("activity.started")
    finally:
        token.restore()
"""

from taskhub.framework.logging.config import configure_logging
from taskhub.framework.logging.context import (
    LogContext,
    clear_context,
    get_context,
    get_logger,
    push_context,
)

__all__ = [
    # Configuration
    "configure_logging",
    # Context
    "get_logger",
    "clear_context",
    "get_context",
    "push_context",
    "LogContext",
]
