"""Session checkpoint persistence.

A checkpoint is the ``(session_id, current_step, state)`` snapshot taken when a
session suspends (or concludes). Loading it and resuming reproduces the exact
suspension point.

Two backends:
    - :class:`InMemoryCheckpointStore` for tests and ephemeral runs.
    - :class:`FileCheckpointStore` writing one JSON document per session through
      an injected :class:`FileSystem`.
"""

from __future__ import annotations

import copy
import json
import logging
import re
import threading
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

from pydantic import BaseModel, Field, ValidationError

from mobile_native_orchestrator.orchestrator.filesystem import FileSystem, LocalFileSystem

logger = logging.getLogger(__name__)

_UNSAFE_ID_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class Checkpoint(BaseModel):
    session_id: str
    current_step: str
    state: dict[str, Any] = Field(default_factory=dict)
    saved_at: str = Field(default="")


class CheckpointStore(Protocol):
    def save(self, session_id: str, current_step: str, state: dict[str, Any]) -> None: ...

    def load(self, session_id: str) -> tuple[str, dict[str, Any]] | None: ...

    def get(self, session_id: str) -> Checkpoint | None: ...


def _utc_iso_now() -> str:
    return datetime.now(tz=UTC).isoformat()


class InMemoryCheckpointStore:
    """Process-local store. Contents are lost when the process exits."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._checkpoints: dict[str, Checkpoint] = {}

    def save(self, session_id: str, current_step: str, state: dict[str, Any]) -> None:
        checkpoint = Checkpoint(
            session_id=session_id,
            current_step=current_step,
            state=copy.deepcopy(state),
            saved_at=_utc_iso_now(),
        )
        with self._lock:
            self._checkpoints[session_id] = checkpoint

    def get(self, session_id: str) -> Checkpoint | None:
        with self._lock:
            checkpoint = self._checkpoints.get(session_id)
        if checkpoint is None:
            return None
        return checkpoint.model_copy(deep=True)

    def load(self, session_id: str) -> tuple[str, dict[str, Any]] | None:
        checkpoint = self.get(session_id)
        if checkpoint is None:
            return None
        return checkpoint.current_step, checkpoint.state


class FileCheckpointStore:
    """JSON-file backed checkpoint store, one document per session."""

    def __init__(self, directory: Path, fs: FileSystem | None = None) -> None:
        self._directory = directory
        self._fs = fs if fs is not None else LocalFileSystem()

    def path_for(self, session_id: str) -> Path:
        safe = _UNSAFE_ID_CHARS.sub("_", session_id) or "_"
        return self._directory / f"{safe}.json"

    def save(self, session_id: str, current_step: str, state: dict[str, Any]) -> None:
        checkpoint = Checkpoint(
            session_id=session_id,
            current_step=current_step,
            state=state,
            saved_at=_utc_iso_now(),
        )
        payload = json.dumps(checkpoint.model_dump(mode="json"), indent=2, ensure_ascii=False)
        path = self.path_for(session_id)
        self._fs.write(path, (payload + "\n").encode("utf-8"))
        logger.debug(
            "Checkpoint saved",
            extra={"session_id": session_id, "current_step": current_step, "path": str(path)},
        )

    def get(self, session_id: str) -> Checkpoint | None:
        path = self.path_for(session_id)
        if not self._fs.exists(path):
            return None

        try:
            raw = json.loads(self._fs.read(path).decode("utf-8"))
            checkpoint = Checkpoint.model_validate(raw)
        except (json.JSONDecodeError, UnicodeDecodeError, ValidationError):
            logger.warning(
                "Checkpoint file is not valid; treating as not found",
                extra={"session_id": session_id, "path": str(path)},
            )
            return None

        if checkpoint.session_id != session_id:
            logger.warning(
                "Checkpoint belongs to a different session; treating as not found",
                extra={"session_id": session_id, "stored_session_id": checkpoint.session_id},
            )
            return None
        return checkpoint

    def load(self, session_id: str) -> tuple[str, dict[str, Any]] | None:
        checkpoint = self.get(session_id)
        if checkpoint is None:
            return None
        return checkpoint.current_step, checkpoint.state


def create_checkpoint_store(backend: str, directory: Path) -> CheckpointStore:
    """Build the configured backend (``file`` or ``memory``)."""

    if backend == "memory":
        return InMemoryCheckpointStore()
    if backend == "file":
        return FileCheckpointStore(directory)
    raise ValueError(f"Unknown checkpoint backend: {backend!r}")
