"""iOS simulator management via ``xcrun simctl``.

Bundle identifier extraction reads the first-level ``*.xcodeproj`` in the
project directory. More than one descriptor is treated as an error rather than
guessing which one is the app.
"""

from __future__ import annotations

import json
import logging
import re
import time
from pathlib import Path

from pydantic import BaseModel, ValidationError

from mobile_native_orchestrator.orchestrator.execution.command_runner import (
    CommandResult,
    CommandRunner,
    CommandTimeoutError,
)
from mobile_native_orchestrator.orchestrator.execution.progress import ProgressReporter
from mobile_native_orchestrator.orchestrator.filesystem import FileSystem, LocalFileSystem

from .devices import Clock, SimulatorDevice, Sleeper, poll_until
from .errors import (
    BundleIdentifierNotFoundError,
    DeploymentError,
    DeviceListError,
    DeviceReadinessTimeoutError,
    ProjectDescriptorError,
    UnresolvedBundleIdentifierError,
)

logger = logging.getLogger(__name__)

ALREADY_BOOTED_MARKER = "Unable to boot device in current state: Booted"
BUNDLE_ID_PATTERN = re.compile(r"PRODUCT_BUNDLE_IDENTIFIER\s*=\s*[\"']?([^\"'\s;]+)[\"']?;")
IOS_RUNTIME_PATTERN = re.compile(r"iOS-(\d+)-(\d+)")

DEFAULT_POLL_INTERVAL_SECONDS = 2.0
DEFAULT_MAX_WAIT_SECONDS = 120.0


class _SimctlDevice(BaseModel):
    name: str
    udid: str
    state: str
    isAvailable: bool | None = None


class _SimctlDevicesOutput(BaseModel):
    devices: dict[str, list[_SimctlDevice]]


def extract_ios_version(runtime_identifier: str) -> str | None:
    """``com.apple.CoreSimulator.SimRuntime.iOS-17-5`` -> ``"17.5"``."""

    match = IOS_RUNTIME_PATTERN.search(runtime_identifier)
    if match is None:
        return None
    return f"{match.group(1)}.{match.group(2)}"


def parse_simctl_devices(stdout: str) -> list[SimulatorDevice]:
    """Parse ``simctl list devices --json`` output; unparseable output yields ``[]``."""

    try:
        parsed = _SimctlDevicesOutput.model_validate(json.loads(stdout))
    except (json.JSONDecodeError, ValidationError) as e:
        logger.debug("Failed to parse simctl devices output", extra={"error": str(e)})
        return []

    devices: list[SimulatorDevice] = []
    for runtime_identifier, runtime_devices in parsed.devices.items():
        ios_version = extract_ios_version(runtime_identifier)
        for device in runtime_devices:
            devices.append(
                SimulatorDevice(
                    name=device.name,
                    udid=device.udid,
                    state=device.state,
                    runtime_identifier=runtime_identifier,
                    ios_version=ios_version,
                )
            )
    return devices


def _failure_detail(result: CommandResult, fallback: str) -> str:
    detail = result.stderr.strip()
    if detail:
        return detail
    code = result.exit_code if result.exit_code is not None else "unknown"
    return f"{fallback}: exit code {code}"


def find_project_descriptor(project_path: Path) -> Path:
    if not project_path.is_dir():
        raise ProjectDescriptorError(f"Failed to read project directory at {project_path}")

    descriptors = sorted(p for p in project_path.iterdir() if p.suffix == ".xcodeproj")
    if not descriptors:
        raise ProjectDescriptorError(
            f"No .xcodeproj directory found in project path: {project_path}"
        )
    if len(descriptors) > 1:
        names = ", ".join(p.name for p in descriptors)
        raise ProjectDescriptorError(
            f"Multiple .xcodeproj directories found in {project_path}: {names}"
        )
    return descriptors[0]


def read_bundle_identifier(project_path: Path, fs: FileSystem | None = None) -> str:
    """Extract ``PRODUCT_BUNDLE_IDENTIFIER`` from the project's ``project.pbxproj``.

    Raises:
        ProjectDescriptorError: no ``.xcodeproj`` (or more than one) in ``project_path``.
        BundleIdentifierNotFoundError: the descriptor has no bundle identifier.
        UnresolvedBundleIdentifierError: the identifier contains ``${...}`` or ``$(...)``.
    """

    fs = fs if fs is not None else LocalFileSystem()
    descriptor = find_project_descriptor(project_path) / "project.pbxproj"
    if not fs.exists(descriptor):
        raise ProjectDescriptorError(f"Project file not found: {descriptor}")

    content = fs.read(descriptor).decode("utf-8", errors="replace")
    match = BUNDLE_ID_PATTERN.search(content)
    if match is None or not match.group(1):
        raise BundleIdentifierNotFoundError(
            f"Could not find PRODUCT_BUNDLE_IDENTIFIER in project file: {descriptor}"
        )

    bundle_id = match.group(1)
    if "${" in bundle_id or "$(" in bundle_id:
        raise UnresolvedBundleIdentifierError(bundle_id, str(descriptor))

    logger.debug("Found bundle ID", extra={"path": str(descriptor), "bundle_id": bundle_id})
    return bundle_id


class SimulatorManager:
    def __init__(
        self,
        runner: CommandRunner,
        *,
        progress_reporter: ProgressReporter | None = None,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        max_wait_seconds: float = DEFAULT_MAX_WAIT_SECONDS,
        clock: Clock = time.monotonic,
        sleep: Sleeper = time.sleep,
    ) -> None:
        self._runner = runner
        self._progress = progress_reporter
        self._poll_interval = poll_interval_seconds
        self._max_wait = max_wait_seconds
        self._clock = clock
        self._sleep = sleep

    def list_devices(self, *, timeout: float = 30.0) -> list[SimulatorDevice]:
        result = self._runner.execute(
            "xcrun",
            ["simctl", "list", "devices", "available", "--json"],
            timeout=timeout,
            progress_reporter=self._progress,
            description="List iOS Simulators",
        )
        if not result.success:
            raise DeviceListError(_failure_detail(result, "Failed to list simulators"))
        return parse_simctl_devices(result.stdout)

    def boot(self, name: str, *, timeout: float = 60.0) -> bool:
        """Boot ``name``. Returns True when it was already booted."""

        result = self._runner.execute(
            "xcrun",
            ["simctl", "boot", name],
            timeout=timeout,
            progress_reporter=self._progress,
            description="Boot iOS Simulator",
        )
        already_booted = ALREADY_BOOTED_MARKER in result.stderr
        if not result.success and not already_booted:
            detail = result.stderr.strip() or f"exit code {result.exit_code}"
            logger.error(
                "Failed to boot simulator", extra={"device": name, "stderr": result.stderr}
            )
            raise DeploymentError(f'Failed to boot iOS simulator "{name}": {detail}')

        logger.info(
            "Simulator already booted" if already_booted else "Simulator boot command completed",
            extra={"device": name},
        )
        return already_booted

    def is_responsive(self, name: str) -> bool:
        try:
            result = self._runner.execute(
                "xcrun",
                ["simctl", "spawn", name, "launchctl", "print", "system"],
                timeout=10.0,
                progress_reporter=self._progress,
                description="Verify iOS Simulator Responsiveness",
            )
        except CommandTimeoutError:
            return False
        return result.success

    def wait_until_ready(self, name: str) -> float:
        """Poll until ``name`` is booted and responsive; returns elapsed seconds.

        Raises:
            DeviceReadinessTimeoutError: the wait budget ran out.
        """

        last_error: str | None = None

        def _ready() -> bool:
            nonlocal last_error
            try:
                devices = self.list_devices(timeout=10.0)
            except (DeviceListError, CommandTimeoutError) as e:
                last_error = str(e)
                logger.debug("Failed to list devices", extra={"error": last_error})
                return False

            target = next((d for d in devices if d.name == name), None)
            if target is None or not target.is_booted:
                return False
            if self.is_responsive(name):
                return True
            logger.debug("Simulator booted but not yet responsive", extra={"device": name})
            return False

        logger.debug(
            "Waiting for simulator to be ready",
            extra={"device": name, "max_wait_seconds": self._max_wait},
        )
        ready, elapsed = poll_until(
            _ready,
            poll_interval_seconds=self._poll_interval,
            max_wait_seconds=self._max_wait,
            clock=self._clock,
            sleep=self._sleep,
        )
        if not ready:
            raise DeviceReadinessTimeoutError(name, elapsed, last_error)
        logger.debug("Simulator is ready", extra={"device": name, "elapsed_seconds": elapsed})
        return elapsed

    def open_simulator_app(self) -> None:
        """Bring up the Simulator GUI. Failures are logged, never raised."""

        try:
            result = self._runner.execute(
                "open",
                ["-a", "Simulator"],
                timeout=10.0,
                progress_reporter=self._progress,
                description="Open Simulator App",
            )
        except CommandTimeoutError as e:
            logger.warning("Error opening Simulator.app", extra={"error": str(e)})
            return
        if not result.success:
            logger.warning(
                "Failed to open Simulator.app",
                extra={"stderr": result.stderr, "exit_code": result.exit_code},
            )

    def install(self, name: str, app_path: Path, *, timeout: float = 120.0) -> None:
        result = self._runner.execute(
            "xcrun",
            ["simctl", "install", name, str(app_path)],
            timeout=timeout,
            progress_reporter=self._progress,
            description="iOS App Installation",
        )
        if not result.success:
            detail = _failure_detail(result, "Failed to install app")
            raise DeploymentError(f'Failed to install iOS app to simulator "{name}": {detail}')
        logger.info("iOS app installed", extra={"device": name, "path": str(app_path)})

    def launch(
        self,
        name: str,
        bundle_id: str,
        *,
        timeout: float = 30.0,
        post_install_delay_seconds: float = 0.0,
    ) -> None:
        if post_install_delay_seconds > 0:
            self._sleep(post_install_delay_seconds)
        result = self._runner.execute(
            "xcrun",
            ["simctl", "launch", name, bundle_id],
            timeout=timeout,
            progress_reporter=self._progress,
            description="iOS App Launch",
        )
        if not result.success:
            detail = _failure_detail(result, "Failed to launch app")
            raise DeploymentError(f'Failed to launch iOS app on simulator "{name}": {detail}')
        logger.info("iOS app launched", extra={"device": name, "bundle_id": bundle_id})
