"""Observability helpers for slacker servers."""

from slacker.observability.logging import LogContext, configure_logging

__all__ = ["LogContext", "configure_logging"]
