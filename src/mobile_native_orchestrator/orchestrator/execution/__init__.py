"""External command execution and progress reporting."""

from .command_runner import (
    CommandExecutionError,
    CommandNotFoundError,
    CommandResult,
    CommandRunner,
    CommandTimeoutError,
)
from .progress import LoggingProgressReporter, ProgressReporter

__all__ = [
    "CommandExecutionError",
    "CommandNotFoundError",
    "CommandResult",
    "CommandRunner",
    "CommandTimeoutError",
    "LoggingProgressReporter",
    "ProgressReporter",
]
