"""FastAPI app factory.

Endpoints are thin wrappers over :class:`WorkflowOrchestrator`.
"""

from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import Body, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from mobile_native_orchestrator import __version__
from mobile_native_orchestrator.mobile import build_orchestrator
from mobile_native_orchestrator.orchestrator.config import OrchestratorSettings
from mobile_native_orchestrator.orchestrator.workflow.session import (
    OrchestratorResponse,
    WorkflowOrchestrator,
)
from mobile_native_orchestrator.server.config import ServerSettings
from mobile_native_orchestrator.server.models import ApiSession

logger = logging.getLogger(__name__)


def create_app(
    settings: ServerSettings | None = None,
    orchestrator: WorkflowOrchestrator | None = None,
) -> FastAPI:
    settings = settings or ServerSettings()
    if orchestrator is None:
        orchestrator = build_orchestrator(OrchestratorSettings())

    app = FastAPI(
        title="Mobile Native Orchestrator",
        version=__version__,
        description="REST API over the resumable mobile native app workflow.",
        openapi_url="/api/openapi.json",
        docs_url="/api/docs",
        redoc_url="/api/redoc",
    )

    app.state.settings = settings
    app.state.orchestrator = orchestrator

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.parsed_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/api/v1/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post(
        "/api/v1/orchestrate",
        response_model=OrchestratorResponse,
        response_model_exclude_none=True,
    )
    def orchestrate(payload: Annotated[Any, Body()] = None) -> OrchestratorResponse:
        # Malformed bodies are handled by the orchestrator as fresh input.
        try:
            return orchestrator.handle_request(payload)
        except Exception as e:
            logger.exception("Workflow step failed")
            raise HTTPException(status_code=500, detail=f"Workflow step failed: {e}") from e

    @app.get("/api/v1/sessions/{session_id}", response_model=ApiSession)
    def get_session(session_id: str) -> ApiSession:
        checkpoint = orchestrator.describe_session(session_id)
        if checkpoint is None:
            raise HTTPException(status_code=404, detail="Session not found")
        return ApiSession.from_checkpoint(checkpoint)

    return app
