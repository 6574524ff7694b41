"""Unit tests for platform builds and build progress parsing."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import Mock

from mobile_native_orchestrator.orchestrator.build import BuildExecutor
from mobile_native_orchestrator.orchestrator.build.executor import (
    ANDROID_PROGRESS_PATTERNS,
    AndroidBuildCommandFactory,
    IosBuildCommandFactory,
)
from mobile_native_orchestrator.orchestrator.execution import (
    CommandExecutionError,
    CommandNotFoundError,
    CommandResult,
    CommandRunner,
    CommandTimeoutError,
)
from mobile_native_orchestrator.orchestrator.execution.progress import parse_progress


def _result(success: bool, stderr: str = "") -> CommandResult:
    return CommandResult(
        exit_code=0 if success else 65,
        stdout="",
        stderr=stderr,
        success=success,
        duration=1.0,
    )


def test_ios_command_builds_into_the_artifact_directory(tmp_path: Path) -> None:
    command = IosBuildCommandFactory().create(tmp_path, "Contacts", tmp_path / "out" / "Contacts")

    assert command.program == "sh"
    assert command.args[0] == "-c"
    script = command.args[1]
    assert "xcodebuild -workspace Contacts.xcworkspace -scheme Contacts" in script
    assert "generic/platform=iOS Simulator" in script
    assert f'CONFIGURATION_BUILD_DIR="{tmp_path / "out" / "Contacts"}"' in script


def test_android_command_uses_gradle_wrapper_with_env(tmp_path: Path) -> None:
    factory = AndroidBuildCommandFactory("release", env={"JAVA_HOME": "/jdk"})

    command = factory.create(tmp_path, "Contacts", tmp_path / "out")

    assert command.program == "./gradlew"
    assert command.args == ["assembleRelease"]
    assert command.cwd == tmp_path
    assert command.env == {"JAVA_HOME": "/jdk"}


def test_gradle_progress_counts_tasks() -> None:
    output = "> Task :app:preBuild\n> Task :app:compileDebugKotlin\n"

    update = AndroidBuildCommandFactory().parse_progress(output, 10)

    assert update.progress == 12
    assert update.message == "Running task: app:compileDebugKotlin"


def test_progress_is_capped_until_completion() -> None:
    output = "> Task :a\n" * 20

    capped = parse_progress(output, 90, ANDROID_PROGRESS_PATTERNS, lambda m: "x")
    done = parse_progress(output + "BUILD SUCCESSFUL in 3s\n", 90, ANDROID_PROGRESS_PATTERNS, str)

    assert capped.progress == 95
    assert done.progress == 100
    assert done.message == "Build completed successfully"


def test_progress_never_decreases_on_failure() -> None:
    update = IosBuildCommandFactory().parse_progress("** BUILD FAILED **\n", 40)

    assert update.progress == 40
    assert update.message == "Build failed"


def test_successful_build(tmp_path: Path) -> None:
    runner = Mock(spec=CommandRunner)
    runner.execute.return_value = _result(True)
    executor = BuildExecutor(runner, tmp_path / "build_output")

    outcome = executor.execute("iOS", tmp_path, "Contacts")

    assert outcome.build_successful is True
    assert outcome.build_output_file_path is None
    kwargs = runner.execute.call_args.kwargs
    assert kwargs["output_file"] == tmp_path / "build_output" / "logs" / "ios-build.log"
    assert kwargs["cwd"] == tmp_path


def test_failed_build_reports_log_path(tmp_path: Path) -> None:
    runner = Mock(spec=CommandRunner)
    runner.execute.return_value = _result(False, stderr="error: no such module")
    executor = BuildExecutor(runner, tmp_path / "build_output")

    outcome = executor.execute("Android", tmp_path, "Contacts", env={"ANDROID_HOME": "/sdk"})

    assert outcome.build_successful is False
    assert outcome.exit_code == 65
    assert outcome.error == "error: no such module"
    assert outcome.build_output_file_path == executor.build_log_path("Android")
    assert runner.execute.call_args.kwargs["env"] == {"ANDROID_HOME": "/sdk"}


def test_command_errors_become_failed_outcomes(tmp_path: Path) -> None:
    runner = Mock(spec=CommandRunner)
    runner.execute.side_effect = CommandNotFoundError("./gradlew")
    executor = BuildExecutor(runner, tmp_path)

    outcome = executor.execute("Android", tmp_path, "Contacts")

    assert outcome.build_successful is False
    assert outcome.error == "Command not found: ./gradlew"
    log = tmp_path / "logs" / "android-build.log"
    assert outcome.build_output_file_path == log
    assert log.read_text(encoding="utf-8") == "Command not found: ./gradlew\n"


def test_timed_out_build_keeps_the_streamed_log(tmp_path: Path) -> None:
    runner = Mock(spec=CommandRunner)
    runner.execute.side_effect = CommandTimeoutError("xcodebuild", 600, 600)
    executor = BuildExecutor(runner, tmp_path)

    outcome = executor.execute("iOS", tmp_path, "Contacts")

    assert outcome.build_output_file_path == executor.build_log_path("iOS")
    assert not outcome.build_output_file_path.exists()


def test_unwritable_build_output_reports_no_log(tmp_path: Path) -> None:
    blocker = tmp_path / "build_output"
    blocker.write_text("not a directory", encoding="utf-8")
    runner = Mock(spec=CommandRunner)
    runner.execute.side_effect = CommandExecutionError("Cannot write command output")

    outcome = BuildExecutor(runner, blocker).execute("Android", tmp_path, "Contacts")

    assert outcome.build_successful is False
    assert outcome.build_output_file_path is None
    assert outcome.error == "Cannot write command output"


def test_unsupported_platform(tmp_path: Path) -> None:
    runner = Mock(spec=CommandRunner)

    outcome = BuildExecutor(runner, tmp_path).execute("Windows", tmp_path, "Contacts")

    assert outcome.build_successful is False
    assert outcome.error == "Unsupported platform: Windows"
    runner.execute.assert_not_called()
