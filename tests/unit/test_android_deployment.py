"""Unit tests for Android emulator management (fake command runner)."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from mobile_native_orchestrator.orchestrator.deployment import (
    DeploymentError,
    DeviceListError,
    DeviceReadinessTimeoutError,
    EmulatorManager,
)
from mobile_native_orchestrator.orchestrator.execution import CommandTimeoutError
from mobile_native_orchestrator.orchestrator.deployment.android import (
    android_environment,
    apk_path,
    emulator_name_for,
    parse_device_list,
    read_application_id,
    read_launch_activity,
)

MANIFEST = """<?xml version="1.0" encoding="utf-8"?>
<manifest xmlns:android="http://schemas.android.com/apk/res/android">
    <application android:label="Contacts">
        <activity android:name=".SettingsActivity" android:exported="false" />
        <activity
            android:exported="true"
            android:name="com.acme.contacts.MainActivity">
            <intent-filter>
                <action android:name="android.intent.action.MAIN" />
                <category android:name="android.intent.category.LAUNCHER" />
            </intent-filter>
        </activity>
    </application>
</manifest>
"""


def _device_list(*devices: dict[str, object]) -> str:
    return json.dumps({"status": 0, "outputContent": list(devices)})


def _device(device_id: str, os_version: object) -> dict[str, object]:
    return {
        "id": device_id,
        "name": device_id.replace("_", " "),
        "deviceType": "pixel",
        "osType": "google_apis",
        "osVersion": os_version,
    }


def _manager(runner, clock, max_wait: float = 30) -> EmulatorManager:
    return EmulatorManager(
        runner,
        env={"ANDROID_HOME": "/sdk"},
        poll_interval_seconds=3,
        max_wait_seconds=max_wait,
        clock=clock,
        sleep=clock.sleep,
    )


def test_android_environment_only_includes_known_paths() -> None:
    assert android_environment("/sdk", None) == {"ANDROID_HOME": "/sdk"}
    assert android_environment("/sdk", "/jdk") == {"ANDROID_HOME": "/sdk", "JAVA_HOME": "/jdk"}
    assert android_environment(None, "") == {}


def test_emulator_name_is_sanitized() -> None:
    assert emulator_name_for("My App!") == "Pixel_API_35_My_App_"
    assert emulator_name_for(None) == "Pixel_API_35_App"


def test_apk_path(tmp_path: Path) -> None:
    assert apk_path(tmp_path) == tmp_path / "app/build/outputs/apk/debug/app-debug.apk"


def test_parse_device_list_marks_compatibility() -> None:
    stdout = _device_list(
        _device("Pixel_API_35", {"major": 35, "minor": 0, "patch": 0}),
        _device("Pixel_API_30", {"major": 30, "minor": 0, "patch": 0}),
        _device("Unknown", "15"),
    )

    emulators = parse_device_list(stdout, min_sdk=35)

    assert [(e.name, e.api_level, e.is_compatible) for e in emulators] == [
        ("Pixel_API_35", 35, True),
        ("Pixel_API_30", 30, False),
        ("Unknown", None, True),
    ]


def test_parse_device_list_rejects_bad_json() -> None:
    with pytest.raises(DeviceListError):
        parse_device_list("oops")


def test_list_emulators_passes_env(fake_runner, fake_clock) -> None:
    fake_runner.on("sf", "force", "lightning", "local", "device", "list", stdout=_device_list())

    assert _manager(fake_runner, fake_clock).list_emulators(min_sdk=35) == []
    assert fake_runner.calls[0].options["env"] == {"ANDROID_HOME": "/sdk"}
    assert fake_runner.commands() == [
        "sf force lightning local device list -p android --json -o all"
    ]


def test_create_runs_sf_device_create(fake_runner, fake_clock, tmp_path: Path) -> None:
    fake_runner.on("sf", "force", "lightning", "local", "device", "create")

    _manager(fake_runner, fake_clock).create("Pixel_API_35_App", project_path=tmp_path)

    assert fake_runner.commands() == [
        "sf force lightning local device create -n Pixel_API_35_App -d pixel -p android -l 35"
    ]
    assert fake_runner.calls[0].options["cwd"] == tmp_path


def test_create_failure_raises(fake_runner, fake_clock) -> None:
    fake_runner.on("sf", "force", "lightning", "local", "device", "create", exit_code=1)

    with pytest.raises(DeploymentError, match="Failed to create Android emulator"):
        _manager(fake_runner, fake_clock).create("Pixel")


def test_start_treats_already_running_as_success(fake_runner, fake_clock) -> None:
    fake_runner.on(
        "sf",
        "force",
        "lightning",
        "local",
        "device",
        "start",
        stdout="Emulator Pixel is already running",
        exit_code=1,
    )

    assert _manager(fake_runner, fake_clock).start("Pixel") is True


def test_wait_until_ready_polls_boot_completed(fake_runner, fake_clock) -> None:
    fake_runner.on("adb", "wait-for-device")
    fake_runner.on("adb", "shell", "getprop", stdout="\n")
    fake_runner.on("adb", "shell", "getprop", stdout="1\n")

    elapsed = _manager(fake_runner, fake_clock).wait_until_ready("Pixel")

    assert elapsed == 3
    assert fake_clock.sleeps == [3]
    assert fake_runner.calls[0].options["timeout"] == 30


def test_slow_boot_status_check_is_retried_on_the_next_poll(fake_runner, fake_clock) -> None:
    fake_runner.on("adb", "wait-for-device")
    fake_runner.on("adb", "shell", "getprop", error=CommandTimeoutError("adb", 10, 10))
    fake_runner.on("adb", "shell", "getprop", stdout="1\n")

    elapsed = _manager(fake_runner, fake_clock).wait_until_ready("Pixel")

    assert elapsed == 3
    assert fake_runner.commands().count("adb shell getprop sys.boot_completed") == 2


def test_boot_status_timeouts_exhaust_the_budget(fake_runner, fake_clock) -> None:
    fake_runner.on("adb", "wait-for-device")
    fake_runner.on("adb", "shell", "getprop", error=CommandTimeoutError("adb", 10, 10))

    with pytest.raises(DeviceReadinessTimeoutError, match="Command timeout after 10s") as excinfo:
        _manager(fake_runner, fake_clock, max_wait=9).wait_until_ready("Pixel")

    assert excinfo.value.elapsed == 9


def test_wait_until_ready_times_out(fake_runner, fake_clock) -> None:
    fake_runner.on("adb", "wait-for-device")
    fake_runner.on("adb", "shell", "getprop", stdout="0\n")

    with pytest.raises(DeviceReadinessTimeoutError, match="sys.boot_completed='0'"):
        _manager(fake_runner, fake_clock, max_wait=9).wait_until_ready("Pixel")


def test_wait_for_device_failure_raises(fake_runner, fake_clock) -> None:
    fake_runner.on("adb", "wait-for-device", stderr="no devices", exit_code=1)

    with pytest.raises(DeploymentError, match="adb wait-for-device failed: no devices"):
        _manager(fake_runner, fake_clock).wait_until_ready("Pixel")


def test_install_and_launch_commands(fake_runner, fake_clock, tmp_path: Path) -> None:
    fake_runner.on("sf", "force", "lightning", "local", "app")
    manager = _manager(fake_runner, fake_clock)

    manager.install("Pixel", tmp_path / "app-debug.apk", project_path=tmp_path)
    manager.launch("Pixel", "com.acme.contacts", "com.acme.contacts.MainActivity")

    assert fake_runner.commands() == [
        f"sf force lightning local app install -p android -t Pixel -a {tmp_path / 'app-debug.apk'}",
        "sf force lightning local app launch -p android -t Pixel "
        "-i com.acme.contacts/com.acme.contacts.MainActivity",
    ]


def test_launch_failure_raises(fake_runner, fake_clock) -> None:
    fake_runner.on("sf", "force", "lightning", "local", "app", "launch", stderr="boom", exit_code=1)

    with pytest.raises(DeploymentError, match="boom"):
        _manager(fake_runner, fake_clock).launch("Pixel", "com.acme", ".Main")


def test_read_application_id_from_groovy_and_kotlin(tmp_path: Path) -> None:
    app = tmp_path / "app"
    app.mkdir()
    (app / "build.gradle.kts").write_text(
        'android {\n    defaultConfig {\n        applicationId = "com.acme.kts"\n    }\n}\n',
        encoding="utf-8",
    )
    assert read_application_id(tmp_path) == "com.acme.kts"

    (app / "build.gradle").write_text(
        "android {\n    defaultConfig {\n        applicationId 'com.acme.groovy'\n    }\n}\n",
        encoding="utf-8",
    )
    assert read_application_id(tmp_path) == "com.acme.groovy"


def test_read_application_id_missing(tmp_path: Path) -> None:
    assert read_application_id(tmp_path) is None


def test_read_launch_activity(tmp_path: Path) -> None:
    manifest = tmp_path / "app" / "src" / "main" / "AndroidManifest.xml"
    manifest.parent.mkdir(parents=True)
    manifest.write_text(MANIFEST, encoding="utf-8")

    assert read_launch_activity(tmp_path) == "com.acme.contacts.MainActivity"


def test_read_launch_activity_without_manifest(tmp_path: Path) -> None:
    assert read_launch_activity(tmp_path) is None
