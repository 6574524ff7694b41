"""External command execution.

A nonzero exit code is a normal result (``success=False``). Only transport-level
failures raise: a missing program, an unusable working directory, or a timeout.
"""

from __future__ import annotations

import logging
import os
import subprocess
import threading
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import IO

from .progress import PROGRESS_TOTAL, ProgressParser, ProgressReporter

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 300.0
DEFAULT_PROGRESS_DEBOUNCE_SECONDS = 2.0
_UTF8_LOCALE = "en_US.UTF-8"


class CommandExecutionError(RuntimeError):
    pass


class CommandNotFoundError(CommandExecutionError):
    def __init__(self, program: str) -> None:
        super().__init__(f"Command not found: {program}")
        self.program = program


class CommandTimeoutError(CommandExecutionError):
    def __init__(self, program: str, timeout: float, elapsed: float) -> None:
        super().__init__(
            f"Command timeout after {timeout:g}s ({int(elapsed)}s elapsed): {program}"
        )
        self.program = program
        self.timeout = timeout
        self.elapsed = elapsed


@dataclass(frozen=True, slots=True)
class CommandResult:
    exit_code: int | None
    stdout: str
    stderr: str
    success: bool
    duration: float
    signal: int | None = None


def _safe_report(reporter: ProgressReporter | None, progress: float, message: str) -> None:
    if reporter is None:
        return
    try:
        reporter.report(progress, PROGRESS_TOTAL, message)
    except Exception:
        # A broken sink must never abort the command.
        logger.warning("Progress reporter failed", exc_info=True)


class _ProgressTracker:
    def __init__(
        self,
        reporter: ProgressReporter | None,
        parser: ProgressParser | None,
        started: float,
        debounce_seconds: float,
    ) -> None:
        self._reporter = reporter
        self._parser = parser
        self._started = started
        self._debounce = debounce_seconds
        self._current = 0
        self._last_reported: int | None = None
        self._last_report_time: float | None = None

    def on_output(self, parts: list[str]) -> None:
        if self._reporter is None:
            return
        output = "".join(parts)

        now = time.monotonic()
        elapsed_message = f"Command in progress... ({int(now - self._started)}s elapsed)"
        message = elapsed_message
        if self._parser is not None:
            try:
                update = self._parser(output, self._current)
            except Exception:
                logger.debug("Progress parser failed", exc_info=True)
            else:
                if update.progress > self._current:
                    self._current = update.progress
                message = update.message or elapsed_message

        changed = self._last_reported != self._current
        debounce_elapsed = (
            self._last_report_time is None or now - self._last_report_time >= self._debounce
        )
        if changed or debounce_elapsed:
            _safe_report(self._reporter, self._current, message)
            self._last_reported = self._current
            self._last_report_time = now


class CommandRunner:
    """Run external programs with a timeout, optional progress, and output capture."""

    def __init__(
        self,
        default_timeout: float = DEFAULT_TIMEOUT_SECONDS,
        *,
        progress_debounce_seconds: float = DEFAULT_PROGRESS_DEBOUNCE_SECONDS,
    ) -> None:
        if default_timeout < 0:
            raise ValueError("default_timeout must be >= 0")
        self.default_timeout = default_timeout
        self._debounce = progress_debounce_seconds

    def execute(
        self,
        program: str,
        args: Sequence[str] = (),
        *,
        timeout: float | None = None,
        cwd: str | Path | None = None,
        env: Mapping[str, str] | None = None,
        progress_reporter: ProgressReporter | None = None,
        progress_parser: ProgressParser | None = None,
        output_file: Path | None = None,
        description: str | None = None,
    ) -> CommandResult:
        """Execute ``program`` with ``args``.

        Args:
            timeout: Seconds before the process is terminated; 0 disables the limit.
            env: Overrides layered over a copy of the process environment.
            output_file: Receives a copy of stdout and stderr.

        Raises:
            CommandNotFoundError: The program could not be found.
            CommandTimeoutError: The timeout elapsed before the process exited.
            CommandExecutionError: The process could not be started or ``output_file``
                could not be opened.
        """

        effective_timeout = self.default_timeout if timeout is None else timeout
        label = description or program

        run_env = dict(os.environ)
        if env:
            run_env.update(env)
        if not run_env.get("LANG"):
            run_env["LANG"] = _UTF8_LOCALE
        if not run_env.get("LC_ALL"):
            run_env["LC_ALL"] = _UTF8_LOCALE

        if cwd is not None and not Path(cwd).is_dir():
            raise CommandExecutionError(f"Working directory does not exist: {cwd}")

        logger.debug(
            "Executing command",
            extra={
                "command": label,
                "program": program,
                "command_args": list(args),
                "cwd": str(cwd or ""),
            },
        )
        _safe_report(progress_reporter, 0, "Starting command execution...")

        output_handle: IO[str] | None = None
        if output_file is not None:
            try:
                output_file.parent.mkdir(parents=True, exist_ok=True)
                output_handle = output_file.open("w", encoding="utf-8")
            except OSError as e:
                _safe_report(progress_reporter, PROGRESS_TOTAL, f"Command execution error: {e}")
                raise CommandExecutionError(
                    f"Cannot write command output to {output_file}: {e}"
                ) from e

        started = time.monotonic()
        try:
            process = subprocess.Popen(
                [program, *args],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=cwd,
                env=run_env,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except FileNotFoundError as e:
            if output_handle is not None:
                output_handle.close()
            _safe_report(progress_reporter, PROGRESS_TOTAL, f"Command execution error: {e}")
            raise CommandNotFoundError(program) from e
        except OSError as e:
            if output_handle is not None:
                output_handle.close()
            _safe_report(progress_reporter, PROGRESS_TOTAL, f"Command execution error: {e}")
            raise CommandExecutionError(f"Failed to start {program}: {e}") from e

        stdout_parts: list[str] = []
        stderr_parts: list[str] = []
        write_lock = threading.Lock()
        tracker = _ProgressTracker(progress_reporter, progress_parser, started, self._debounce)

        def _pump(stream: IO[str], parts: list[str], track: bool) -> None:
            for line in stream:
                parts.append(line)
                if output_handle is not None:
                    with write_lock:
                        output_handle.write(line)
                if track:
                    tracker.on_output(parts)

        readers = [
            threading.Thread(target=_pump, args=(process.stdout, stdout_parts, True), daemon=True),
            threading.Thread(target=_pump, args=(process.stderr, stderr_parts, False), daemon=True),
        ]
        for reader in readers:
            reader.start()

        try:
            try:
                process.wait(timeout=effective_timeout if effective_timeout > 0 else None)
            except subprocess.TimeoutExpired:
                process.terminate()
                try:
                    process.wait(timeout=5)
                except subprocess.TimeoutExpired:
                    process.kill()
                    process.wait()
                elapsed = time.monotonic() - started
                logger.warning(
                    "Command timed out",
                    extra={"command": label, "timeout_seconds": effective_timeout},
                )
                raise CommandTimeoutError(program, effective_timeout, elapsed) from None
            finally:
                for reader in readers:
                    reader.join(timeout=5)
        finally:
            if output_handle is not None:
                output_handle.close()

        duration = time.monotonic() - started
        returncode = process.returncode
        success = returncode == 0
        exit_code = returncode if returncode >= 0 else None
        signal_number = -returncode if returncode < 0 else None

        if success:
            _safe_report(progress_reporter, PROGRESS_TOTAL, "Command completed successfully")
        elif signal_number is not None:
            _safe_report(
                progress_reporter, PROGRESS_TOTAL, f"Command terminated by signal: {signal_number}"
            )
        else:
            _safe_report(
                progress_reporter, PROGRESS_TOTAL, f"Command failed with exit code: {returncode}"
            )

        logger.debug(
            "Command finished",
            extra={"command": label, "exit_code": exit_code, "duration_seconds": duration},
        )
        return CommandResult(
            exit_code=exit_code,
            stdout="".join(stdout_parts),
            stderr="".join(stderr_parts),
            success=success,
            duration=duration,
            signal=signal_number,
        )
