"""Contract for runtime telemetry and structured logging sinks."""

from __future__ import annotations

import logging
from typing import Protocol

from rich.logging import RichHandler


class Telemetry(Protocol):
    """Reports operational events, traces, and build outcomes."""

    def emit(self, event_name: str, payload: dict) -> None:
        """Publish telemetry event to the configured sink."""


class LoggingTelemetry:
    """Telemetry sink that forwards events to a standard logger."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger("city_builder.telemetry")

    def emit(self, event_name: str, payload: dict) -> None:
        self._logger.info(event_name, extra={"payload": payload})


def configure_logging(level: str = "INFO") -> None:
    """Install a rich console handler on the package logger."""
    logger = logging.getLogger("city_builder")
    logger.setLevel(level.upper())
    if not any(isinstance(handler, RichHandler) for handler in logger.handlers):
        logger.addHandler(RichHandler(rich_tracebacks=True, show_path=False))
