"""Unit tests for external command execution (real subprocesses)."""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

from mobile_native_orchestrator.orchestrator.execution import (
    CommandExecutionError,
    CommandNotFoundError,
    CommandRunner,
    CommandTimeoutError,
)
from mobile_native_orchestrator.orchestrator.execution.progress import ProgressUpdate


class RecordingReporter:
    def __init__(self) -> None:
        self.reports: list[tuple[float, float | None, str | None]] = []

    def report(
        self, progress: float, total: float | None = None, message: str | None = None
    ) -> None:
        self.reports.append((progress, total, message))


class BrokenReporter:
    def report(
        self, progress: float, total: float | None = None, message: str | None = None
    ) -> None:
        raise RuntimeError("sink is down")


def _python(code: str) -> tuple[str, list[str]]:
    return sys.executable, ["-c", code]


def test_successful_command_captures_output() -> None:
    program, args = _python("import sys; print('hello'); print('oops', file=sys.stderr)")

    result = CommandRunner().execute(program, args)

    assert result.success is True
    assert result.exit_code == 0
    assert result.stdout.strip() == "hello"
    assert result.stderr.strip() == "oops"
    assert result.signal is None
    assert result.duration >= 0


def test_nonzero_exit_is_a_result_not_an_error() -> None:
    program, args = _python("import sys; sys.exit(3)")

    result = CommandRunner().execute(program, args)

    assert result.success is False
    assert result.exit_code == 3


def test_missing_program_raises_not_found() -> None:
    with pytest.raises(CommandNotFoundError):
        CommandRunner().execute("definitely-not-a-real-program-xyz", [])


def test_missing_working_directory_raises(tmp_path: Path) -> None:
    program, args = _python("print('x')")

    with pytest.raises(CommandExecutionError, match="Working directory"):
        CommandRunner().execute(program, args, cwd=tmp_path / "missing")


def test_timeout_terminates_the_process() -> None:
    program, args = _python("import time; time.sleep(30)")

    with pytest.raises(CommandTimeoutError) as excinfo:
        CommandRunner().execute(program, args, timeout=0.5)

    assert excinfo.value.timeout == 0.5
    assert excinfo.value.elapsed < 30


def test_env_overrides_are_layered_without_touching_os_environ(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.delenv("ANDROID_HOME", raising=False)
    program, args = _python("import os; print(os.environ['ANDROID_HOME'], os.environ['LANG'])")

    result = CommandRunner().execute(
        program, args, env={"ANDROID_HOME": "/opt/sdk", "LANG": "C.UTF-8"}
    )

    assert result.stdout.split() == ["/opt/sdk", "C.UTF-8"]
    assert "ANDROID_HOME" not in os.environ


def test_locale_defaults_to_utf8(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("LANG", raising=False)
    monkeypatch.delenv("LC_ALL", raising=False)
    program, args = _python("import os; print(os.environ['LANG'], os.environ['LC_ALL'])")

    result = CommandRunner().execute(program, args)

    assert result.stdout.split() == ["en_US.UTF-8", "en_US.UTF-8"]


def test_progress_is_reported_from_start_to_finish() -> None:
    reporter = RecordingReporter()
    program, args = _python("print('step one'); print('step two')")

    def parser(output: str, current: int) -> ProgressUpdate:
        return ProgressUpdate(progress=output.count("step") * 10, message="working")

    CommandRunner(progress_debounce_seconds=0).execute(
        program, args, progress_reporter=reporter, progress_parser=parser
    )

    assert reporter.reports[0] == (0, 100, "Starting command execution...")
    assert reporter.reports[-1] == (100, 100, "Command completed successfully")
    middle = [p for p, _, _ in reporter.reports[1:-1]]
    assert middle == sorted(middle)


def test_failure_is_reported_with_exit_code() -> None:
    reporter = RecordingReporter()
    program, args = _python("import sys; sys.exit(2)")

    CommandRunner().execute(program, args, progress_reporter=reporter)

    assert reporter.reports[-1] == (100, 100, "Command failed with exit code: 2")


def test_broken_progress_sink_does_not_abort_the_command() -> None:
    program, args = _python("print('fine')")

    result = CommandRunner().execute(program, args, progress_reporter=BrokenReporter())

    assert result.success is True


def test_output_file_receives_stdout_and_stderr(tmp_path: Path) -> None:
    log = tmp_path / "logs" / "build.log"
    program, args = _python("import sys; print('out'); print('err', file=sys.stderr)")

    CommandRunner().execute(program, args, output_file=log)

    content = log.read_text(encoding="utf-8")
    assert "out" in content
    assert "err" in content


def test_unwritable_output_file_fails_before_the_process_starts(tmp_path: Path) -> None:
    blocker = tmp_path / "build_output"
    blocker.write_text("not a directory", encoding="utf-8")
    marker = tmp_path / "started"
    program, args = _python(f"open({str(marker)!r}, 'w').close()")
    reporter = RecordingReporter()

    with pytest.raises(CommandExecutionError, match="Cannot write command output"):
        CommandRunner().execute(
            program, args, output_file=blocker / "logs" / "build.log", progress_reporter=reporter
        )

    assert not marker.exists()
    assert reporter.reports[-1][0] == 100


def test_negative_default_timeout_is_rejected() -> None:
    with pytest.raises(ValueError):
        CommandRunner(default_timeout=-1)
