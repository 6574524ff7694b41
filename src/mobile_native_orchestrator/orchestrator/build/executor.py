"""Platform build execution.

Each platform has a command factory that knows how to invoke the native build
tool and how to turn its output into progress updates. :class:`BuildExecutor`
runs the command, tees output into a per-platform build log and reports a
:class:`BuildOutcome`. Command errors become a failed outcome rather than an
exception so the workflow can route to recovery.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from mobile_native_orchestrator.orchestrator.execution.command_runner import (
    CommandExecutionError,
    CommandRunner,
    CommandTimeoutError,
)
from mobile_native_orchestrator.orchestrator.execution.progress import (
    PROGRESS_COMPLETE,
    PROGRESS_FAILURE,
    ProgressPattern,
    ProgressReporter,
    ProgressUpdate,
    parse_progress,
)

logger = logging.getLogger(__name__)

IOS = "iOS"
ANDROID = "Android"

IOS_PROGRESS_PATTERNS = (
    ProgressPattern(re.compile(r"Compiling\s+(\S+)"), 2),
    ProgressPattern(re.compile(r"Linking\s+(\S+)"), 3),
    ProgressPattern(re.compile(r"CodeSign\s+(\S+)"), 2),
    ProgressPattern(re.compile(r"BUILD SUCCEEDED"), PROGRESS_COMPLETE),
    ProgressPattern(re.compile(r"BUILD FAILED"), PROGRESS_FAILURE),
)

ANDROID_PROGRESS_PATTERNS = (
    ProgressPattern(re.compile(r"> Task :(\S+)"), 1),
    ProgressPattern(re.compile(r"BUILD SUCCESSFUL"), PROGRESS_COMPLETE),
    ProgressPattern(re.compile(r"BUILD FAILED"), PROGRESS_FAILURE),
)


@dataclass(frozen=True, slots=True)
class BuildCommand:
    program: str
    args: list[str]
    cwd: Path | None = None
    env: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class BuildOutcome:
    build_successful: bool
    build_output_file_path: Path | None = None
    exit_code: int | None = None
    error: str | None = None


class BuildCommandFactory(Protocol):
    def create(self, project_path: Path, project_name: str, artifact_dir: Path) -> BuildCommand: ...

    def parse_progress(self, output: str, current: int) -> ProgressUpdate: ...


class IosBuildCommandFactory:
    def create(self, project_path: Path, project_name: str, artifact_dir: Path) -> BuildCommand:
        script = (
            f'cd "{project_path}" && xcodebuild -workspace {project_name}.xcworkspace '
            f"-scheme {project_name} -destination 'generic/platform=iOS Simulator' "
            f'clean build CONFIGURATION_BUILD_DIR="{artifact_dir}"'
        )
        return BuildCommand(program="sh", args=["-c", script], cwd=project_path)

    def parse_progress(self, output: str, current: int) -> ProgressUpdate:
        return parse_progress(
            output,
            current,
            IOS_PROGRESS_PATTERNS,
            lambda m: f"Building: {m.group(1) if m.groups() else 'in progress'}",
        )


class AndroidBuildCommandFactory:
    def __init__(self, build_type: str = "debug", env: Mapping[str, str] | None = None) -> None:
        self._build_type = build_type
        self._env = dict(env or {})

    def create(self, project_path: Path, project_name: str, artifact_dir: Path) -> BuildCommand:
        task = f"assemble{self._build_type.capitalize()}"
        return BuildCommand(
            program="./gradlew",
            args=[task],
            cwd=project_path,
            env=dict(self._env),
        )

    def parse_progress(self, output: str, current: int) -> ProgressUpdate:
        return parse_progress(
            output,
            current,
            ANDROID_PROGRESS_PATTERNS,
            lambda m: f"Running task: {m.group(1) if m.groups() else 'in progress'}",
        )


class BuildExecutor:
    """Run platform builds and record their logs under ``build_output_path``."""

    def __init__(self, runner: CommandRunner, build_output_path: Path) -> None:
        self._runner = runner
        self._output_path = build_output_path

    def build_log_path(self, platform: str) -> Path:
        return self._output_path / "logs" / f"{platform.lower()}-build.log"

    def artifact_root(self, project_name: str) -> Path:
        return self._output_path / project_name

    def execute(
        self,
        platform: str,
        project_path: Path,
        project_name: str,
        *,
        progress_reporter: ProgressReporter | None = None,
        build_type: str = "debug",
        env: Mapping[str, str] | None = None,
    ) -> BuildOutcome:
        logger.info(
            "Executing build",
            extra={
                "platform": platform,
                "project_path": str(project_path),
                "project_name": project_name,
            },
        )
        log_path = self.build_log_path(platform)

        factory: BuildCommandFactory
        if platform == IOS:
            factory = IosBuildCommandFactory()
        elif platform == ANDROID:
            factory = AndroidBuildCommandFactory(build_type, env)
        else:
            return BuildOutcome(build_successful=False, error=f"Unsupported platform: {platform}")

        command = factory.create(project_path, project_name, self.artifact_root(project_name))
        try:
            result = self._runner.execute(
                command.program,
                command.args,
                cwd=command.cwd,
                env=command.env,
                progress_reporter=progress_reporter,
                progress_parser=factory.parse_progress,
                output_file=log_path,
                description=f"{platform} build",
            )
        except CommandExecutionError as e:
            # A timed-out build already streamed its output to the log.
            output_path = (
                log_path if isinstance(e, CommandTimeoutError) else _write_build_log(log_path, e)
            )
            logger.info(
                "Build execution failed",
                extra={"error": str(e), "build_log": str(output_path or "")},
            )
            return BuildOutcome(
                build_successful=False, build_output_file_path=output_path, error=str(e)
            )

        logger.info(
            "Build execution completed",
            extra={
                "success": result.success,
                "exit_code": result.exit_code,
                "duration_seconds": result.duration,
            },
        )
        if result.success:
            return BuildOutcome(build_successful=True, exit_code=result.exit_code)
        return BuildOutcome(
            build_successful=False,
            build_output_file_path=log_path,
            exit_code=result.exit_code,
            error=result.stderr or result.stdout,
        )


def _write_build_log(log_path: Path, error: CommandExecutionError) -> Path | None:
    """Record why a build never ran; None when the log location is not writable."""

    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        log_path.write_text(f"{error}\n", encoding="utf-8")
    except OSError as e:
        logger.warning(
            "Cannot write build log", extra={"build_log": str(log_path), "error": str(e)}
        )
        return None
    return log_path
