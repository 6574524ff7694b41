"""Native build execution for generated projects."""

from .executor import BuildExecutor, BuildOutcome

__all__ = ["BuildExecutor", "BuildOutcome"]
