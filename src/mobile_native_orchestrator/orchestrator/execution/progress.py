"""Progress reporting for long-running commands."""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Protocol

logger = logging.getLogger(__name__)

PROGRESS_TOTAL = 100
PROGRESS_COMPLETE = 100
PROGRESS_FAILURE = -1
PROGRESS_MAX_BEFORE_COMPLETE = 95


class ProgressReporter(Protocol):
    """Sink for ``(current, total, message)`` progress notifications."""

    def report(
        self, progress: float, total: float | None = None, message: str | None = None
    ) -> None: ...


class LoggingProgressReporter:
    """Report progress through the logging system."""

    def __init__(self, label: str = "command") -> None:
        self._label = label

    def report(
        self, progress: float, total: float | None = None, message: str | None = None
    ) -> None:
        logger.info(
            message or "Progress update",
            extra={"task": self._label, "progress": progress, "total": total},
        )


@dataclass(frozen=True, slots=True)
class ProgressUpdate:
    progress: int
    message: str | None = None


ProgressParser = Callable[[str, int], ProgressUpdate]


@dataclass(frozen=True, slots=True)
class ProgressPattern:
    """A regex whose matches in command output advance progress.

    ``weight`` is either a per-match increment, :data:`PROGRESS_COMPLETE`, or
    :data:`PROGRESS_FAILURE`.
    """

    pattern: re.Pattern[str]
    weight: int


def parse_progress(
    output: str,
    current: int,
    patterns: Sequence[ProgressPattern],
    format_message: Callable[[re.Match[str]], str],
) -> ProgressUpdate:
    """Estimate progress from accumulated output.

    Progress never decreases and stays at or below
    :data:`PROGRESS_MAX_BEFORE_COMPLETE` until a completion pattern matches.
    """

    new_progress = current
    message: str | None = None

    for item in patterns:
        matches = list(item.pattern.finditer(output))
        if not matches:
            continue
        if item.weight == PROGRESS_COMPLETE:
            new_progress = PROGRESS_COMPLETE
            message = "Build completed successfully"
            break
        if item.weight == PROGRESS_FAILURE:
            message = "Build failed"
            break
        increment = min(item.weight * len(matches), PROGRESS_COMPLETE - current)
        new_progress = min(current + increment, PROGRESS_MAX_BEFORE_COMPLETE)
        message = format_message(matches[-1])

    return ProgressUpdate(progress=max(new_progress, current), message=message)
