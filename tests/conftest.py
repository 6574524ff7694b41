"""Test configuration and fixtures."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from mobile_native_orchestrator.orchestrator.execution import CommandResult
from mobile_native_orchestrator.orchestrator.workflow.checkpoint import InMemoryCheckpointStore


@dataclass
class RecordedCall:
    program: str
    args: list[str]
    options: dict[str, Any]


@dataclass
class _Rule:
    key: tuple[str, ...]
    outcomes: list[CommandResult | Exception] = field(default_factory=list)


class FakeRunner:
    """Command runner double answering from registered ``(program, *arg_prefix)`` rules.

    Outcomes registered for the same rule are returned in order; the last one repeats.
    The rule with the longest matching prefix wins. Unmatched commands fail the test.
    """

    def __init__(self) -> None:
        self.calls: list[RecordedCall] = []
        self._rules: list[_Rule] = []

    def on(
        self,
        program: str,
        *prefix: str,
        stdout: str = "",
        stderr: str = "",
        exit_code: int = 0,
        error: Exception | None = None,
    ) -> FakeRunner:
        outcome: CommandResult | Exception
        if error is not None:
            outcome = error
        else:
            outcome = CommandResult(
                exit_code=exit_code,
                stdout=stdout,
                stderr=stderr,
                success=exit_code == 0,
                duration=0.0,
            )
        key = (program, *prefix)
        for rule in self._rules:
            if rule.key == key:
                rule.outcomes.append(outcome)
                return self
        self._rules.append(_Rule(key, [outcome]))
        return self

    def execute(self, program: str, args: Sequence[str] = (), **options: Any) -> CommandResult:
        command = (program, *args)
        self.calls.append(RecordedCall(program, list(args), options))

        matching = [r for r in self._rules if command[: len(r.key)] == r.key]
        if not matching:
            raise AssertionError(f"Unexpected command: {' '.join(command)}")
        rule = max(matching, key=lambda r: len(r.key))
        outcome = rule.outcomes.pop(0) if len(rule.outcomes) > 1 else rule.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def commands(self) -> list[str]:
        return [" ".join([c.program, *c.args]) for c in self.calls]


class FakeClock:
    """Monotonic clock whose time only moves when ``sleep`` is called."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_store() -> InMemoryCheckpointStore:
    return InMemoryCheckpointStore()


@pytest.fixture
def temp_state_dir(tmp_path: Path) -> Path:
    """Provide a temporary state directory."""
    state_dir = tmp_path / "workflow_state"
    state_dir.mkdir()
    return state_dir


@pytest.fixture
def isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """Run from an empty directory with no orchestrator or SDK variables set."""

    for name in (
        "LOG_LEVEL",
        "ORCHESTRATOR_CHECKPOINT_BACKEND",
        "ORCHESTRATOR_STATE_PATH",
        "ORCHESTRATOR_SESSION_PREFIX",
        "ORCHESTRATOR_COMMAND_TIMEOUT_SECONDS",
        "ORCHESTRATOR_MAX_BUILD_RETRIES",
        "ORCHESTRATOR_READINESS_POLL_INTERVAL_SECONDS",
        "ORCHESTRATOR_READINESS_MAX_WAIT_SECONDS",
        "ORCHESTRATOR_BUILD_OUTPUT_PATH",
        "ORCHESTRATOR_CORS_ORIGINS",
        "ANDROID_HOME",
        "JAVA_HOME",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture(autouse=True)
def _restore_root_logger() -> Iterator[None]:
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)
