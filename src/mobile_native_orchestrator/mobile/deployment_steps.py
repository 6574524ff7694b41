"""Deployment steps: pick a device, boot it, install and launch the built app.

Command and device errors are turned into fatal error messages so the graph can
route to the failure step. Project descriptor and bundle identifier errors in
the iOS launch step are not caught: a project without a usable bundle id cannot
be launched by retrying.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

from mobile_native_orchestrator.orchestrator.deployment import (
    DeploymentError,
    EmulatorManager,
    SimulatorManager,
    read_bundle_identifier,
    select_best_emulator,
    select_best_simulator,
)
from mobile_native_orchestrator.orchestrator.deployment.android import (
    android_environment,
    apk_path,
    emulator_name_for,
    read_application_id,
    read_launch_activity,
)
from mobile_native_orchestrator.orchestrator.execution import CommandExecutionError
from mobile_native_orchestrator.orchestrator.workflow.state import (
    append_fatal_error,
    is_absent,
)

from .properties import ANDROID, ANDROID_MIN_SDK, IOS

logger = logging.getLogger(__name__)

IOS_POST_INSTALL_DELAY_SECONDS = 2.0

EmulatorManagerFactory = Callable[[Mapping[str, str]], EmulatorManager]


def ios_app_path(build_output_path: Path, project_name: str) -> Path:
    return build_output_path / project_name / f"{project_name}.app"


class _IosStep:
    name = ""

    def __init__(self, simulators: SimulatorManager) -> None:
        self._simulators = simulators

    def _skip(self, state: Mapping[str, Any]) -> bool:
        if state.get("platform") != IOS:
            logger.debug("Skipping iOS step for non-iOS platform", extra={"step": self.name})
            return True
        return False


class IosSelectSimulatorStep(_IosStep):
    name = "iosSelectSimulator"

    def run(self, state: Mapping[str, Any]) -> dict[str, Any]:
        if self._skip(state):
            return {}
        if not is_absent(state.get("targetDevice")):
            logger.debug("Target device already set", extra={"device": state["targetDevice"]})
            return {}

        try:
            devices = self._simulators.list_devices()
        except (DeploymentError, CommandExecutionError) as e:
            logger.error("Failed to list iOS simulators", extra={"error": str(e)})
            return append_fatal_error(
                state,
                f"Failed to list iOS simulators: {e}. Please ensure Xcode is properly installed.",
            )

        selected = select_best_simulator(devices)
        if selected is None:
            return append_fatal_error(
                state, "No iOS simulators found. Please install simulators via Xcode."
            )
        logger.info("Selected iOS simulator", extra={"device": selected.name})
        return {"targetDevice": selected.name}


class IosBootSimulatorStep(_IosStep):
    name = "iosBootSimulator"

    def run(self, state: Mapping[str, Any]) -> dict[str, Any]:
        if self._skip(state):
            return {}
        device = state.get("targetDevice")
        if is_absent(device):
            return append_fatal_error(state, "Target device must be specified for iOS deployment")

        try:
            self._simulators.boot(device)
            self._simulators.wait_until_ready(device)
        except (DeploymentError, CommandExecutionError) as e:
            logger.error("Simulator did not become ready", extra={"device": device})
            return append_fatal_error(state, str(e))

        self._simulators.open_simulator_app()
        logger.info("iOS simulator booted and ready", extra={"device": device})
        return {}


class IosInstallAppStep(_IosStep):
    name = "iosInstallApp"

    def __init__(self, simulators: SimulatorManager, build_output_path: Path) -> None:
        super().__init__(simulators)
        self._build_output_path = build_output_path

    def run(self, state: Mapping[str, Any]) -> dict[str, Any]:
        if self._skip(state):
            return {}
        device = state.get("targetDevice")
        if is_absent(device):
            return append_fatal_error(state, "Target device must be specified for iOS deployment")
        project_name = state.get("projectName")
        if is_absent(project_name):
            return append_fatal_error(state, "Project name must be specified for iOS deployment")

        app = ios_app_path(self._build_output_path, project_name)
        try:
            self._simulators.install(device, app)
        except DeploymentError as e:
            return append_fatal_error(state, str(e))
        except CommandExecutionError as e:
            return append_fatal_error(state, f"Failed to install iOS app: {e}")
        return {}


class IosLaunchAppStep(_IosStep):
    name = "iosLaunchApp"

    def run(self, state: Mapping[str, Any]) -> dict[str, Any]:
        if self._skip(state):
            return {}
        device = state.get("targetDevice")
        if is_absent(device):
            return append_fatal_error(state, "Target device must be specified for iOS deployment")
        if is_absent(state.get("packageName")) or is_absent(state.get("projectName")):
            return append_fatal_error(
                state, "Package name and project name must be specified for iOS app launch"
            )
        project_path = state.get("projectPath")
        if is_absent(project_path):
            return append_fatal_error(state, "Project path must be specified for iOS app launch")

        bundle_id = read_bundle_identifier(Path(project_path))
        try:
            self._simulators.launch(
                device, bundle_id, post_install_delay_seconds=IOS_POST_INSTALL_DELAY_SECONDS
            )
        except DeploymentError as e:
            return append_fatal_error(state, str(e))
        except CommandExecutionError as e:
            return append_fatal_error(state, f"Failed to launch iOS app: {e}")
        return {"deploymentStatus": "success"}


class _AndroidStep:
    name = ""

    def __init__(self, emulators: EmulatorManagerFactory) -> None:
        self._emulators = emulators

    def _skip(self, state: Mapping[str, Any]) -> bool:
        if state.get("platform") != ANDROID:
            logger.debug(
                "Skipping Android step for non-Android platform", extra={"step": self.name}
            )
            return True
        return False

    def _manager(self, state: Mapping[str, Any]) -> EmulatorManager:
        return self._emulators(android_environment(state.get("androidHome"), state.get("javaHome")))


class AndroidSelectEmulatorStep(_AndroidStep):
    """Pick an existing emulator; an empty list leaves the name unset so one gets created."""

    name = "androidSelectEmulator"

    def run(self, state: Mapping[str, Any]) -> dict[str, Any]:
        if self._skip(state):
            return {}
        if not is_absent(state.get("androidEmulatorName")):
            return {}

        try:
            emulators = self._manager(state).list_emulators(min_sdk=ANDROID_MIN_SDK)
        except (DeploymentError, CommandExecutionError) as e:
            logger.error("Failed to list Android emulators", extra={"error": str(e)})
            return append_fatal_error(
                state,
                f"Failed to list Android emulators: {e}. "
                "Please ensure Android SDK is properly installed.",
            )

        selected = select_best_emulator(emulators)
        if selected is None:
            logger.warning("No emulators found, will create one")
            return {}
        logger.info("Selected Android emulator", extra={"device": selected.name})
        return {"androidEmulatorName": selected.name}


class AndroidCreateEmulatorStep(_AndroidStep):
    name = "androidCreateEmulator"

    def run(self, state: Mapping[str, Any]) -> dict[str, Any]:
        if self._skip(state):
            return {}
        emulator = emulator_name_for(state.get("projectName"))
        project_path = state.get("projectPath")
        try:
            self._manager(state).create(
                emulator,
                project_path=None if is_absent(project_path) else Path(project_path),
            )
        except DeploymentError as e:
            return append_fatal_error(state, str(e))
        except CommandExecutionError as e:
            return append_fatal_error(state, f"Failed to create Android emulator: {e}")
        return {"androidEmulatorName": emulator}


class AndroidStartEmulatorStep(_AndroidStep):
    name = "androidStartEmulator"

    def run(self, state: Mapping[str, Any]) -> dict[str, Any]:
        if self._skip(state):
            return {}
        emulator = state.get("androidEmulatorName")
        if is_absent(emulator):
            return append_fatal_error(
                state,
                "Emulator name must be selected before starting. "
                "Ensure an emulator was selected or created.",
            )

        project_path = state.get("projectPath")
        manager = self._manager(state)
        try:
            manager.start(
                emulator,
                project_path=None if is_absent(project_path) else Path(project_path),
            )
            manager.wait_until_ready(emulator)
        except DeploymentError as e:
            return append_fatal_error(state, str(e))
        except CommandExecutionError as e:
            return append_fatal_error(state, f"Failed to start Android emulator: {e}")
        return {}


class AndroidInstallAppStep(_AndroidStep):
    name = "androidInstallApp"

    def run(self, state: Mapping[str, Any]) -> dict[str, Any]:
        if self._skip(state):
            return {}
        emulator = state.get("androidEmulatorName")
        if is_absent(emulator):
            return append_fatal_error(state, "Emulator name must be specified for app installation")
        project_path = state.get("projectPath")
        if is_absent(project_path):
            return append_fatal_error(
                state, "Project path must be specified for Android deployment"
            )

        apk = apk_path(Path(project_path), state.get("buildType") or "debug")
        try:
            self._manager(state).install(emulator, apk, project_path=Path(project_path))
        except DeploymentError as e:
            return append_fatal_error(state, str(e))
        except CommandExecutionError as e:
            return append_fatal_error(state, f"Failed to install Android app: {e}")
        return {}


class AndroidLaunchAppStep(_AndroidStep):
    name = "androidLaunchApp"

    def run(self, state: Mapping[str, Any]) -> dict[str, Any]:
        if self._skip(state):
            return {}
        project_path = state.get("projectPath")
        if is_absent(project_path):
            return append_fatal_error(
                state, "Project path must be specified for Android deployment"
            )

        application_id = read_application_id(Path(project_path))
        if application_id is None and not is_absent(state.get("packageName")):
            logger.debug("Using packageName as applicationId fallback")
            application_id = state.get("packageName")
        if application_id is None:
            return append_fatal_error(
                state,
                "Application ID must be specified for Android app launch. "
                "Please ensure build.gradle contains applicationId.",
            )

        emulator = state.get("androidEmulatorName")
        if is_absent(emulator):
            return append_fatal_error(
                state,
                "Emulator name must be specified for Android app launch. "
                "Please ensure an emulator is selected.",
            )

        activity = read_launch_activity(Path(project_path))
        if activity is None:
            return append_fatal_error(
                state,
                "Launcher activity must be specified in AndroidManifest.xml "
                "with android.intent.category.LAUNCHER.",
            )

        try:
            self._manager(state).launch(emulator, application_id, activity)
        except DeploymentError as e:
            return append_fatal_error(state, str(e))
        except CommandExecutionError as e:
            return append_fatal_error(state, f"Failed to launch Android app: {e}")
        return {"deploymentStatus": "success"}
