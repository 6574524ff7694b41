"""Render interrupt payloads into instructions for the external actor."""

from __future__ import annotations

import json
from typing import Any, assert_never

from .interrupts import DelegateRequest, GuidanceRequest

ORCHESTRATOR_CAPABILITY = "sfmobile-native-project-manager"

COMPLETION_INSTRUCTIONS = (
    "The workflow has concluded. No further workflow actions are forthcoming."
)


def _json_block(value: Any) -> str:
    return "```json\n" + json.dumps(value, indent=2, ensure_ascii=False, default=str) + "\n```"


def _resume_section(session_id: str, *, result_label: str) -> str:
    return (
        "## Returning the result\n\n"
        f"Once the step above is complete, invoke the `{ORCHESTRATOR_CAPABILITY}` capability "
        "again with the following input so the workflow can continue:\n\n"
        + _json_block({"user_input": f"<{result_label}>", "session_token": session_id})
    )


def render_delegate(payload: DelegateRequest, session_id: str) -> str:
    return "\n\n".join(
        [
            "# Workflow action required",
            f"Invoke the `{payload.capability}` capability.",
            f"Purpose: {payload.description}",
            "## Input schema\n\n" + _json_block(payload.input_schema),
            "## Input values\n\n" + _json_block(payload.input),
            _resume_section(session_id, result_label=f"the result of {payload.capability}"),
        ]
    )


def render_guidance(payload: GuidanceRequest, session_id: str) -> str:
    parts = [
        "# Workflow guidance",
        f"Step: `{payload.node_id}`",
        payload.guidance,
        "## Expected result schema\n\n" + _json_block(payload.result_schema),
    ]
    if payload.example_output is not None:
        parts.append("## Example result\n\n" + _json_block(payload.example_output))
    parts.append(_resume_section(session_id, result_label="a result matching the schema"))
    return "\n\n".join(parts)


def render_instructions(payload: DelegateRequest | GuidanceRequest, session_id: str) -> str:
    """Instructions for the next external action, always embedding ``session_id``."""

    if isinstance(payload, DelegateRequest):
        return render_delegate(payload, session_id)
    if isinstance(payload, GuidanceRequest):
        return render_guidance(payload, session_id)
    assert_never(payload)
