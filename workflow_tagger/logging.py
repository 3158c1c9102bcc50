"""
Logging configuration for the Workflow Auto-Tagger.
"""

import logging
from collections import deque
from typing import List, Optional
from rich.logging import RichHandler
from .config import settings


def setup_logging() -> None:
    """Configure clean, simple logging output."""

    # Configure standard library logging with Rich handler
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, settings.log_level),
        handlers=[RichHandler(
            rich_tracebacks=True,
            show_time=True,
            show_path=False,
            show_level=False,
            markup=False
        )],
        force=True  # Override any existing configuration
    )

    # Silence noisy third-party loggers
    logging.getLogger("PIL").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str):
    """Get a standard logger instance."""
    return logging.getLogger(name)


class RunLog:
    """Bounded log of a single batch run.

    Keeps only the most recent lines (ring buffer) and forwards every
    line to the ``run`` logger so the console sees the full history.
    """

    def __init__(self, capacity: Optional[int] = None):
        self.logger = get_logger("run")
        self.capacity = capacity or settings.log_buffer_size
        self._lines = deque(maxlen=self.capacity)

    def write(self, message: str, level: int = logging.INFO) -> None:
        """Append a line to the buffer and emit it."""
        self._lines.append(message)
        self.logger.log(level, message)

    def info(self, message: str) -> None:
        self.write(message, logging.INFO)

    def warning(self, message: str) -> None:
        self.write(message, logging.WARNING)

    def error(self, message: str) -> None:
        self.write(message, logging.ERROR)

    def lines(self) -> List[str]:
        """Buffered lines, oldest first."""
        return list(self._lines)

    def clear(self) -> None:
        self._lines.clear()

    def __len__(self) -> int:
        return len(self._lines)
