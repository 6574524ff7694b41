"""Pydantic models for the REST server."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from mobile_native_orchestrator.orchestrator.workflow.checkpoint import Checkpoint
from mobile_native_orchestrator.orchestrator.workflow.graph import END


class ApiSession(BaseModel):
    session_id: str
    current_step: str
    concluded: bool
    saved_at: str
    state: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_checkpoint(cls, checkpoint: Checkpoint) -> ApiSession:
        return cls(
            session_id=checkpoint.session_id,
            current_step=checkpoint.current_step,
            concluded=checkpoint.current_step == END,
            saved_at=checkpoint.saved_at,
            state=checkpoint.state,
        )
