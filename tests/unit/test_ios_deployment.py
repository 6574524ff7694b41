"""Unit tests for iOS simulator management (fake command runner)."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from mobile_native_orchestrator.orchestrator.deployment import (
    BundleIdentifierNotFoundError,
    DeploymentError,
    DeviceListError,
    DeviceReadinessTimeoutError,
    ProjectDescriptorError,
    SimulatorManager,
    UnresolvedBundleIdentifierError,
    read_bundle_identifier,
)
from mobile_native_orchestrator.orchestrator.deployment.ios import (
    ALREADY_BOOTED_MARKER,
    extract_ios_version,
    parse_simctl_devices,
)
from mobile_native_orchestrator.orchestrator.execution import CommandTimeoutError

RUNTIME_17 = "com.apple.CoreSimulator.SimRuntime.iOS-17-5"
RUNTIME_18 = "com.apple.CoreSimulator.SimRuntime.iOS-18-0"


def _devices_json(state: str = "Shutdown") -> str:
    return json.dumps(
        {
            "devices": {
                RUNTIME_17: [{"name": "iPhone 15", "udid": "A", "state": "Shutdown"}],
                RUNTIME_18: [
                    {"name": "iPhone 16", "udid": "B", "state": state, "isAvailable": True}
                ],
            }
        }
    )


def _manager(runner, clock) -> SimulatorManager:
    return SimulatorManager(
        runner,
        poll_interval_seconds=2,
        max_wait_seconds=10,
        clock=clock,
        sleep=clock.sleep,
    )


def _xcode_project(root: Path, content: str, name: str = "Contacts") -> Path:
    descriptor = root / f"{name}.xcodeproj"
    descriptor.mkdir(parents=True)
    (descriptor / "project.pbxproj").write_text(content, encoding="utf-8")
    return root


def test_extract_ios_version() -> None:
    assert extract_ios_version(RUNTIME_17) == "17.5"
    assert extract_ios_version("com.apple.CoreSimulator.SimRuntime.watchOS-10-0") is None


def test_parse_simctl_devices() -> None:
    devices = parse_simctl_devices(_devices_json())

    assert [(d.name, d.ios_version) for d in devices] == [
        ("iPhone 15", "17.5"),
        ("iPhone 16", "18.0"),
    ]


def test_unparseable_simctl_output_yields_no_devices() -> None:
    assert parse_simctl_devices("not json") == []
    assert parse_simctl_devices(json.dumps({"unexpected": True})) == []


def test_list_devices_failure_raises(fake_runner, fake_clock) -> None:
    fake_runner.on("xcrun", "simctl", "list", stderr="xcrun: error", exit_code=1)

    with pytest.raises(DeviceListError, match="xcrun: error"):
        _manager(fake_runner, fake_clock).list_devices()


def test_boot_treats_already_booted_as_success(fake_runner, fake_clock) -> None:
    fake_runner.on("xcrun", "simctl", "boot", stderr=ALREADY_BOOTED_MARKER, exit_code=149)

    assert _manager(fake_runner, fake_clock).boot("iPhone 16") is True


def test_boot_failure_names_the_device(fake_runner, fake_clock) -> None:
    fake_runner.on("xcrun", "simctl", "boot", stderr="Invalid device", exit_code=2)

    with pytest.raises(DeploymentError, match='Failed to boot iOS simulator "iPhone 16"'):
        _manager(fake_runner, fake_clock).boot("iPhone 16")


def test_wait_until_ready_polls_until_booted_and_responsive(fake_runner, fake_clock) -> None:
    fake_runner.on("xcrun", "simctl", "list", stdout=_devices_json("Shutdown"))
    fake_runner.on("xcrun", "simctl", "list", stdout=_devices_json("Booted"))
    fake_runner.on("xcrun", "simctl", "spawn", exit_code=1)
    fake_runner.on("xcrun", "simctl", "spawn", exit_code=0)

    elapsed = _manager(fake_runner, fake_clock).wait_until_ready("iPhone 16")

    assert elapsed == 4
    assert fake_clock.sleeps == [2, 2]
    assert fake_runner.commands().count("xcrun simctl spawn iPhone 16 launchctl print system") == 2


def test_wait_until_ready_times_out_with_last_error(fake_runner, fake_clock) -> None:
    fake_runner.on("xcrun", "simctl", "list", error=CommandTimeoutError("xcrun", 10, 10))

    with pytest.raises(DeviceReadinessTimeoutError) as excinfo:
        _manager(fake_runner, fake_clock).wait_until_ready("iPhone 16")

    assert excinfo.value.device == "iPhone 16"
    assert excinfo.value.last_error is not None
    assert "timeout" in excinfo.value.last_error


def test_unresponsive_responsiveness_check_is_not_ready(fake_runner, fake_clock) -> None:
    fake_runner.on("xcrun", "simctl", "spawn", error=CommandTimeoutError("xcrun", 10, 10))

    assert _manager(fake_runner, fake_clock).is_responsive("iPhone 16") is False


def test_open_simulator_app_failure_is_not_fatal(fake_runner, fake_clock) -> None:
    fake_runner.on("open", "-a", "Simulator", stderr="no GUI", exit_code=1)

    _manager(fake_runner, fake_clock).open_simulator_app()

    assert fake_runner.commands() == ["open -a Simulator"]


def test_install_failure_uses_stderr(fake_runner, fake_clock, tmp_path: Path) -> None:
    fake_runner.on("xcrun", "simctl", "install", stderr="bad bundle", exit_code=1)

    with pytest.raises(DeploymentError, match="bad bundle"):
        _manager(fake_runner, fake_clock).install("iPhone 16", tmp_path / "App.app")


def test_launch_waits_before_launching(fake_runner, fake_clock) -> None:
    fake_runner.on("xcrun", "simctl", "launch")

    _manager(fake_runner, fake_clock).launch(
        "iPhone 16", "com.acme.contacts", post_install_delay_seconds=2
    )

    assert fake_clock.sleeps == [2]
    assert fake_runner.commands() == ["xcrun simctl launch iPhone 16 com.acme.contacts"]


def test_read_bundle_identifier(tmp_path: Path) -> None:
    project = _xcode_project(
        tmp_path,
        'buildSettings = {\n\tPRODUCT_BUNDLE_IDENTIFIER = "com.acme.contacts";\n};\n',
    )

    assert read_bundle_identifier(project) == "com.acme.contacts"


def test_read_unquoted_bundle_identifier(tmp_path: Path) -> None:
    project = _xcode_project(tmp_path, "PRODUCT_BUNDLE_IDENTIFIER = com.acme.app;\n")

    assert read_bundle_identifier(project) == "com.acme.app"


def test_unresolved_bundle_identifier_is_rejected(tmp_path: Path) -> None:
    project = _xcode_project(
        tmp_path, "PRODUCT_BUNDLE_IDENTIFIER = com.acme.$(PRODUCT_NAME:rfc1034identifier);\n"
    )

    with pytest.raises(UnresolvedBundleIdentifierError):
        read_bundle_identifier(project)


def test_missing_bundle_identifier(tmp_path: Path) -> None:
    project = _xcode_project(tmp_path, "// nothing here\n")

    with pytest.raises(BundleIdentifierNotFoundError):
        read_bundle_identifier(project)


def test_missing_or_ambiguous_project_descriptor(tmp_path: Path) -> None:
    with pytest.raises(ProjectDescriptorError, match="No .xcodeproj"):
        read_bundle_identifier(tmp_path)

    _xcode_project(tmp_path, "PRODUCT_BUNDLE_IDENTIFIER = a.b;\n", name="One")
    _xcode_project(tmp_path, "PRODUCT_BUNDLE_IDENTIFIER = c.d;\n", name="Two")
    with pytest.raises(ProjectDescriptorError, match="Multiple"):
        read_bundle_identifier(tmp_path)


def test_project_directory_must_exist(tmp_path: Path) -> None:
    with pytest.raises(ProjectDescriptorError):
        read_bundle_identifier(tmp_path / "missing")
