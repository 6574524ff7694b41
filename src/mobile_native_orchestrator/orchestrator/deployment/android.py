"""Android emulator management through the ``sf`` CLI and ``adb``."""

from __future__ import annotations

import json
import logging
import re
import time
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel, ValidationError

from mobile_native_orchestrator.orchestrator.execution.command_runner import (
    CommandResult,
    CommandRunner,
    CommandTimeoutError,
)
from mobile_native_orchestrator.orchestrator.execution.progress import ProgressReporter

from .devices import Clock, EmulatorDevice, Sleeper, poll_until
from .errors import DeploymentError, DeviceListError, DeviceReadinessTimeoutError

logger = logging.getLogger(__name__)

SF_LOCAL = ("force", "lightning", "local")
DEFAULT_EMULATOR_API_LEVEL = "35"
DEFAULT_EMULATOR_DEVICE = "pixel"
ALREADY_RUNNING_MARKERS = ("already running", "already booted")

APPLICATION_ID_PATTERN = re.compile(r"applicationId\s*[=:]?\s*[\"']([^\"']+)[\"']")
_LAUNCHER_CATEGORY = (
    r"<category\s+android:name\s*=\s*[\"']android\.intent\.category\.LAUNCHER[\"']\s*/>"
)
LAUNCHER_ACTIVITY_PATTERN = re.compile(
    r"<activity[^>]*android:name\s*=\s*[\"']([^\"']+)[\"'][^>]*>[\s\S]*?"
    + _LAUNCHER_CATEGORY
    + r"[\s\S]*?</activity>"
)
LAUNCHER_BLOCK_PATTERN = re.compile(
    r"<activity[^>]*>[\s\S]*?" + _LAUNCHER_CATEGORY + r"[\s\S]*?</activity>"
)
ANDROID_NAME_PATTERN = re.compile(r"android:name\s*=\s*[\"']([^\"']+)[\"']")

DEFAULT_POLL_INTERVAL_SECONDS = 3.0
DEFAULT_MAX_WAIT_SECONDS = 120.0


class _OsVersion(BaseModel):
    major: int
    minor: int = 0
    patch: int = 0


class _SfAndroidDevice(BaseModel):
    id: str
    name: str
    deviceType: str
    osType: str
    osVersion: str | _OsVersion
    isPlayStore: bool | None = None
    port: int | None = None


class _SfDeviceListOutput(BaseModel):
    outputContent: list[_SfAndroidDevice]


def android_environment(android_home: str | None, java_home: str | None) -> dict[str, str]:
    """Environment overrides for commands that need the Android SDK."""

    env: dict[str, str] = {}
    if android_home:
        env["ANDROID_HOME"] = android_home
    if java_home:
        env["JAVA_HOME"] = java_home
    return env


def emulator_name_for(project_name: str | None) -> str:
    sanitized = re.sub(r"[^a-zA-Z0-9]", "_", project_name or "App")
    return f"Pixel_API_{DEFAULT_EMULATOR_API_LEVEL}_{sanitized}"


def apk_path(project_path: Path, build_type: str = "debug") -> Path:
    return project_path / "app" / "build" / "outputs" / "apk" / build_type / f"app-{build_type}.apk"


def read_application_id(project_path: Path) -> str | None:
    """Read ``applicationId`` from ``app/build.gradle`` or ``app/build.gradle.kts``."""

    for gradle_file in (
        project_path / "app" / "build.gradle",
        project_path / "app" / "build.gradle.kts",
    ):
        if not gradle_file.is_file():
            continue
        match = APPLICATION_ID_PATTERN.search(gradle_file.read_text(encoding="utf-8"))
        if match is not None:
            logger.debug(
                "Found applicationId in build file",
                extra={"path": str(gradle_file), "application_id": match.group(1)},
            )
            return match.group(1)
    return None


def read_launch_activity(project_path: Path) -> str | None:
    """Return the activity declaring the LAUNCHER category in ``AndroidManifest.xml``."""

    manifest = project_path / "app" / "src" / "main" / "AndroidManifest.xml"
    if not manifest.is_file():
        logger.debug("AndroidManifest.xml not found", extra={"path": str(manifest)})
        return None

    content = manifest.read_text(encoding="utf-8")
    match = LAUNCHER_ACTIVITY_PATTERN.search(content)
    if match is not None:
        return match.group(1)

    # android:name may follow other attributes on the <activity> tag.
    for block in LAUNCHER_BLOCK_PATTERN.finditer(content):
        name = ANDROID_NAME_PATTERN.search(block.group(0))
        if name is not None:
            return name.group(1)

    logger.debug("No launcher activity found in AndroidManifest.xml")
    return None


def parse_device_list(stdout: str, min_sdk: int = 0) -> list[EmulatorDevice]:
    """Parse ``sf force lightning local device list --json`` output.

    Raises:
        DeviceListError: the output is not the expected JSON document.
    """

    try:
        parsed = _SfDeviceListOutput.model_validate(json.loads(stdout))
    except (json.JSONDecodeError, ValidationError) as e:
        raise DeviceListError(f"Failed to parse device list JSON: {e}") from e

    emulators: list[EmulatorDevice] = []
    for device in parsed.outputContent:
        api_level = device.osVersion.major if isinstance(device.osVersion, _OsVersion) else None
        emulators.append(
            EmulatorDevice(
                # sf commands address emulators by id.
                name=device.id,
                api_level=api_level,
                is_compatible=api_level is None or api_level >= min_sdk,
            )
        )
    logger.debug("Parsed Android emulators", extra={"count": len(emulators)})
    return emulators


def _failure_detail(result: CommandResult, fallback: str) -> str:
    detail = result.stderr.strip()
    if detail:
        return detail
    code = result.exit_code if result.exit_code is not None else "unknown"
    return f"{fallback}: exit code {code}"


class EmulatorManager:
    def __init__(
        self,
        runner: CommandRunner,
        *,
        env: Mapping[str, str] | None = None,
        progress_reporter: ProgressReporter | None = None,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        max_wait_seconds: float = DEFAULT_MAX_WAIT_SECONDS,
        clock: Clock = time.monotonic,
        sleep: Sleeper = time.sleep,
    ) -> None:
        self._runner = runner
        self._env = dict(env or {})
        self._progress = progress_reporter
        self._poll_interval = poll_interval_seconds
        self._max_wait = max_wait_seconds
        self._clock = clock
        self._sleep = sleep

    def _sf(
        self,
        args: list[str],
        *,
        timeout: float,
        description: str,
        cwd: Path | None = None,
    ) -> CommandResult:
        return self._runner.execute(
            "sf",
            [*SF_LOCAL, *args],
            timeout=timeout,
            cwd=cwd,
            env=self._env,
            progress_reporter=self._progress,
            description=description,
        )

    def list_emulators(self, *, min_sdk: int = 0, timeout: float = 30.0) -> list[EmulatorDevice]:
        result = self._sf(
            ["device", "list", "-p", "android", "--json", "-o", "all"],
            timeout=timeout,
            description="List Android Devices",
        )
        if not result.success:
            raise DeviceListError(_failure_detail(result, "Failed to list Android devices"))
        return parse_device_list(result.stdout, min_sdk)

    def create(
        self,
        name: str,
        *,
        api_level: str = DEFAULT_EMULATOR_API_LEVEL,
        project_path: Path | None = None,
        timeout: float = 300.0,
    ) -> None:
        logger.info("Creating Android emulator", extra={"device": name, "api_level": api_level})
        result = self._sf(
            [
                "device",
                "create",
                "-n",
                name,
                "-d",
                DEFAULT_EMULATOR_DEVICE,
                "-p",
                "android",
                "-l",
                api_level,
            ],
            timeout=timeout,
            cwd=project_path,
            description="Create Android Emulator",
        )
        if not result.success:
            detail = _failure_detail(result, "Failed to create emulator")
            logger.error("Failed to create Android emulator", extra={"device": name})
            raise DeploymentError(f'Failed to create Android emulator "{name}": {detail}')
        logger.info("Android emulator created", extra={"device": name})

    def start(self, name: str, *, project_path: Path | None = None, timeout: float = 120.0) -> bool:
        """Start ``name``. Returns True when it was already running."""

        result = self._sf(
            ["device", "start", "-p", "android", "-t", name],
            timeout=timeout,
            cwd=project_path,
            description="Start Android Emulator",
        )
        output = f"{result.stdout}\n{result.stderr}"
        already_running = any(marker in output for marker in ALREADY_RUNNING_MARKERS)
        if not result.success and not already_running:
            detail = _failure_detail(result, "Failed to start emulator")
            raise DeploymentError(f'Failed to start Android emulator "{name}": {detail}')
        logger.info(
            "Emulator already running" if already_running else "Android emulator started",
            extra={"device": name},
        )
        return already_running

    def wait_until_ready(self, name: str) -> float:
        """Block until ``sys.boot_completed`` reports 1; returns elapsed seconds.

        Raises:
            DeploymentError: ``adb wait-for-device`` failed.
            DeviceReadinessTimeoutError: boot did not complete within the budget.
        """

        started = self._clock()
        result = self._runner.execute(
            "adb",
            ["wait-for-device"],
            timeout=min(60.0, self._max_wait),
            env=self._env,
            progress_reporter=self._progress,
            description="Wait for Android Emulator",
        )
        if not result.success:
            raise DeploymentError(
                f"adb wait-for-device failed: {result.stderr.strip() or 'unknown error'}"
            )

        remaining = max(0.0, self._max_wait - (self._clock() - started))
        last_value: str | None = None
        last_error: str | None = None

        def _boot_completed() -> bool:
            nonlocal last_value, last_error
            try:
                status = self._runner.execute(
                    "adb",
                    ["shell", "getprop", "sys.boot_completed"],
                    timeout=10.0,
                    env=self._env,
                    progress_reporter=self._progress,
                    description="Check Android Emulator Boot Status",
                )
            except CommandTimeoutError as e:
                last_error = str(e)
                logger.debug(
                    "Boot status check timed out", extra={"device": name, "error": last_error}
                )
                return False
            last_error = None
            last_value = status.stdout.strip()
            return status.success and last_value == "1"

        ready, elapsed = poll_until(
            _boot_completed,
            poll_interval_seconds=self._poll_interval,
            max_wait_seconds=remaining,
            clock=self._clock,
            sleep=self._sleep,
        )
        if not ready:
            detail = last_error
            if detail is None and last_value is not None:
                detail = f"sys.boot_completed={last_value!r}"
            raise DeviceReadinessTimeoutError(name, self._clock() - started, detail)
        logger.debug("Emulator boot completed", extra={"device": name, "elapsed_seconds": elapsed})
        return self._clock() - started

    def install(self, name: str, apk: Path, *, project_path: Path | None = None) -> None:
        result = self._sf(
            ["app", "install", "-p", "android", "-t", name, "-a", str(apk)],
            timeout=300.0,
            cwd=project_path,
            description="Android App Installation",
        )
        if not result.success:
            detail = _failure_detail(result, "Failed to install app")
            raise DeploymentError(f"Failed to install Android app: {detail}")
        logger.info("Android app installed", extra={"device": name, "path": str(apk)})

    def launch(self, name: str, application_id: str, activity: str) -> None:
        result = self._sf(
            ["app", "launch", "-p", "android", "-t", name, "-i", f"{application_id}/{activity}"],
            timeout=30.0,
            description="Android App Launch",
        )
        if not result.success:
            detail = _failure_detail(result, "Failed to launch app")
            raise DeploymentError(f'Failed to launch Android app "{application_id}": {detail}')
        logger.info(
            "Android app launched",
            extra={"device": name, "application_id": application_id},
        )
