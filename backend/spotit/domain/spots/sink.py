"""User-facing message sink."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Protocol


class Severity(str, Enum):
    INFO = "info"
    ERROR = "error"


class NotificationSink(Protocol):
    def show(self, message: str, severity: Severity) -> None:
        """Fire-and-forget; nothing is returned to the engine."""


class LoggingSink:
    """Default sink: routes user-facing messages to the application log."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger("spotit.sink")

    def show(self, message: str, severity: Severity) -> None:
        level = logging.WARNING if severity is Severity.ERROR else logging.INFO
        self._logger.log(level, message, extra={"severity": Severity(severity).value})
