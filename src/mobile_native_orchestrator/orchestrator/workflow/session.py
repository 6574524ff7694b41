"""Session lifecycle front door.

The orchestrator resolves an inbound ``(user_input, session_token)`` pair into a
new or resumed session, drives the executor, and turns the outcome into an
external-facing response.

Guarantees:
    - A suspended session's checkpoint is saved before the response carrying its
      session id is returned.
    - An empty or unknown token starts a new session instead of failing.
    - Malformed inbound requests are logged and treated as fresh input.
    - The orchestrator keeps no per-session data outside the checkpoint store.
"""

from __future__ import annotations

import logging
import secrets
import time
from collections.abc import Callable
from typing import Any, Literal

from pydantic import BaseModel, ValidationError

from .checkpoint import Checkpoint, CheckpointStore
from .executor import Completed, GraphExecutor, Resumption
from .graph import END, WorkflowGraph
from .instructions import COMPLETION_INSTRUCTIONS, render_instructions
from .interrupts import InterruptPayload

logger = logging.getLogger(__name__)

DEFAULT_SESSION_PREFIX = "mobile"


class OrchestratorRequest(BaseModel):
    user_input: Any = None
    session_token: str = ""


class OrchestratorResponse(BaseModel):
    session_id: str
    status: Literal["suspended", "completed"]
    instructions: str
    interrupt: InterruptPayload | None = None
    state: dict[str, Any] | None = None


def default_session_id(prefix: str) -> str:
    return f"{prefix}-{int(time.time() * 1000)}-{secrets.token_hex(4)}"


class WorkflowOrchestrator:
    def __init__(
        self,
        graph: WorkflowGraph,
        store: CheckpointStore,
        *,
        session_prefix: str = DEFAULT_SESSION_PREFIX,
        id_factory: Callable[[str], str] | None = None,
    ) -> None:
        self._executor = GraphExecutor(graph)
        self._store = store
        self._session_prefix = session_prefix
        self._id_factory = id_factory or default_session_id

    def new_session_id(self) -> str:
        return self._id_factory(self._session_prefix)

    def begin_session(
        self, user_input: Any, session_token: str | None = ""
    ) -> OrchestratorResponse:
        """Start or resume a session.

        Raises:
            Any exception raised by a step. The last saved checkpoint is left as is.
        """

        token = (session_token or "").strip()
        loaded = self._store.load(token) if token else None

        resumption: Resumption | None
        if loaded is None:
            if token:
                logger.warning(
                    "Unknown session token; starting a new session",
                    extra={"session_token": token},
                )
            session_id = self.new_session_id()
            state: dict[str, Any] = {"userInput": user_input}
            resumption = None
            logger.info("Session created", extra={"session_id": session_id})
        else:
            session_id = token
            current_step, state = loaded
            resumption = Resumption(step=current_step, value=user_input)
            logger.info(
                "Session resumed",
                extra={"session_id": session_id, "current_step": current_step},
            )

        result = self._executor.run(state, resumption)

        if isinstance(result, Completed):
            self._store.save(session_id, END, result.state)
            logger.info("Session concluded", extra={"session_id": session_id})
            return OrchestratorResponse(
                session_id=session_id,
                status="completed",
                instructions=COMPLETION_INSTRUCTIONS,
                state=result.state,
            )

        self._store.save(session_id, result.step, result.state)
        return OrchestratorResponse(
            session_id=session_id,
            status="suspended",
            instructions=render_instructions(result.payload, session_id),
            interrupt=result.payload,
        )

    def handle_request(self, raw: object) -> OrchestratorResponse:
        """Validate a raw inbound request, falling back to a new session if malformed."""

        try:
            request = OrchestratorRequest.model_validate(raw)
        except ValidationError as e:
            logger.warning(
                "Malformed orchestrator request; starting a new session",
                extra={"error_count": e.error_count()},
            )
            return self.begin_session(raw, "")
        return self.begin_session(request.user_input, request.session_token)

    def describe_session(self, session_id: str) -> Checkpoint | None:
        return self._store.get(session_id)
