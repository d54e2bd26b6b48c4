"""
Progress and Status Reporting

The exporter reports coarse progress fractions and human-readable
messages to a StatusSink. Sinks are observers only: nothing they do can
change the outcome of an export.
"""

import logging
from enum import Enum
from typing import List, Optional, Tuple


logger = logging.getLogger(__name__)


class StatusLevel(Enum):
    """Severity of a status message."""
    INFO = "info"
    WARNING = "warning"
    FAILURE = "failure"


class StatusSink:
    """Default sink: forwards everything to the logging system."""

    def start(self, task: str):
        logger.debug("%s started", task)

    def progress(self, fraction: float):
        logger.debug("Progress: %.0f%%", fraction * 100.0)

    def end(self):
        logger.debug("Task finished")

    def info(self, message: str):
        logger.info(message)

    def warning(self, message: str):
        logger.warning(message)

    def failure(self, message: str):
        logger.error(message)


class RecordingStatusSink(StatusSink):
    """
    Sink that keeps every message and progress value.

    Used by the web UI to show the outcome of an export and by tests
    to check what was reported.
    """

    def __init__(self):
        self.messages: List[Tuple[StatusLevel, str]] = []
        self.fractions: List[float] = []
        self.active_task: Optional[str] = None

    def start(self, task: str):
        super().start(task)
        self.active_task = task

    def progress(self, fraction: float):
        super().progress(fraction)
        self.fractions.append(fraction)

    def end(self):
        super().end()
        self.active_task = None

    def info(self, message: str):
        super().info(message)
        self.messages.append((StatusLevel.INFO, message))

    def warning(self, message: str):
        super().warning(message)
        self.messages.append((StatusLevel.WARNING, message))

    def failure(self, message: str):
        super().failure(message)
        self.messages.append((StatusLevel.FAILURE, message))

    @property
    def worst_level(self) -> StatusLevel:
        """Highest severity reported so far."""
        levels = {level for level, _ in self.messages}
        if StatusLevel.FAILURE in levels:
            return StatusLevel.FAILURE
        if StatusLevel.WARNING in levels:
            return StatusLevel.WARNING
        return StatusLevel.INFO

    def text(self) -> str:
        """All messages joined into one block of text."""
        return "\n".join(message for _, message in self.messages)
