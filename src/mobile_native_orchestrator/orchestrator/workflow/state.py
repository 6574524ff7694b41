"""Workflow state records and the merge rule applied between steps.

State is an open key/value mapping. Steps never mutate the state they receive;
they return a partial patch that the executor merges with :func:`merge_patch`.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

WorkflowState = dict[str, Any]
StatePatch = Mapping[str, Any]


def merge_patch(state: Mapping[str, Any], patch: StatePatch | None) -> WorkflowState:
    """Shallow-merge ``patch`` onto ``state`` and return a new record.

    Keys present in the patch replace the prior value, including ``None`` values.
    Neither input is modified.
    """

    merged: WorkflowState = dict(state)
    if patch:
        merged.update(patch)
    return merged


def is_absent(value: object) -> bool:
    """Treat ``None`` and the empty string uniformly as "not provided"."""

    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def fatal_errors(state: Mapping[str, Any]) -> list[str]:
    raw = state.get("workflowFatalErrorMessages")
    if not isinstance(raw, list):
        return []
    return [str(m) for m in raw]


def append_fatal_error(state: Mapping[str, Any], message: str) -> WorkflowState:
    """Patch that adds ``message`` to the fatal error list without touching earlier entries."""

    return {"workflowFatalErrorMessages": [*fatal_errors(state), message]}
