from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import pytest
from fastapi.testclient import TestClient

from mobile_native_orchestrator.orchestrator.workflow.checkpoint import InMemoryCheckpointStore
from mobile_native_orchestrator.orchestrator.workflow.graph import END, START, WorkflowGraph
from mobile_native_orchestrator.orchestrator.workflow.interrupts import DelegateRequest, Suspend
from mobile_native_orchestrator.orchestrator.workflow.session import WorkflowOrchestrator
from mobile_native_orchestrator.server.app import create_app
from mobile_native_orchestrator.server.config import ServerSettings


def _graph(*, fail_on_resume: bool = False) -> WorkflowGraph:
    def ask(state: Mapping[str, Any]) -> Suspend:
        return Suspend(DelegateRequest(capability="X", description="Do X"))

    def answer(state: Mapping[str, Any], value: Any) -> dict[str, Any]:
        if fail_on_resume:
            raise RuntimeError("device offline")
        return {"answer": value}

    graph = WorkflowGraph("api")
    graph.add_step("ask", ask, resume=answer)
    graph.add_edge(START, "ask")
    graph.add_edge("ask", END)
    return graph


@pytest.fixture
def store() -> InMemoryCheckpointStore:
    return InMemoryCheckpointStore()


def _client(store: InMemoryCheckpointStore, **graph_options: bool) -> TestClient:
    orchestrator = WorkflowOrchestrator(
        _graph(**graph_options), store, session_prefix="api", id_factory=lambda p: f"{p}-1"
    )
    settings = ServerSettings(ORCHESTRATOR_CORS_ORIGINS="http://localhost:5173")
    return TestClient(create_app(settings, orchestrator))


def test_health(store: InMemoryCheckpointStore) -> None:
    client = _client(store)

    assert client.get("/api/v1/health").json() == {"status": "ok"}
    assert client.get("/api/openapi.json").status_code == 200


def test_orchestrate_suspends_then_completes(store: InMemoryCheckpointStore) -> None:
    client = _client(store)

    first = client.post("/api/v1/orchestrate", json={"user_input": "make an app"})
    assert first.status_code == 200
    body = first.json()
    assert body["session_id"] == "api-1"
    assert body["status"] == "suspended"
    assert body["interrupt"]["kind"] == "delegate"
    assert body["interrupt"]["capability"] == "X"
    assert "state" not in body

    second = client.post(
        "/api/v1/orchestrate",
        json={"user_input": {"ok": True}, "session_token": "api-1"},
    ).json()
    assert second["status"] == "completed"
    assert second["state"]["answer"] == {"ok": True}
    assert "interrupt" not in second


def test_malformed_request_starts_a_new_session(store: InMemoryCheckpointStore) -> None:
    client = _client(store)

    response = client.post("/api/v1/orchestrate", json=["not", "a", "request"])

    assert response.status_code == 200
    assert response.json()["status"] == "suspended"
    assert store.get("api-1").state["userInput"] == ["not", "a", "request"]


def test_step_failure_is_reported_and_checkpoint_kept(store: InMemoryCheckpointStore) -> None:
    client = _client(store, fail_on_resume=True)
    client.post("/api/v1/orchestrate", json={"user_input": "go"})

    response = client.post(
        "/api/v1/orchestrate", json={"user_input": "done", "session_token": "api-1"}
    )

    assert response.status_code == 500
    assert response.json()["detail"] == "Workflow step failed: device offline"
    assert store.get("api-1").current_step == "ask"


def test_session_lookup(store: InMemoryCheckpointStore) -> None:
    client = _client(store)

    assert client.get("/api/v1/sessions/api-1").status_code == 404

    client.post("/api/v1/orchestrate", json={"user_input": "go"})
    session = client.get("/api/v1/sessions/api-1").json()
    assert session["current_step"] == "ask"
    assert session["concluded"] is False
    assert session["state"] == {"userInput": "go"}

    client.post("/api/v1/orchestrate", json={"user_input": 1, "session_token": "api-1"})
    assert client.get("/api/v1/sessions/api-1").json()["concluded"] is True
