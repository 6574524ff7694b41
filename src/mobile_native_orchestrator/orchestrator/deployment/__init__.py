"""Device resolution and app deployment for iOS simulators and Android emulators."""

from .android import EmulatorManager
from .devices import (
    EmulatorDevice,
    SimulatorDevice,
    parse_version,
    poll_until,
    select_best_emulator,
    select_best_simulator,
)
from .errors import (
    BundleIdentifierError,
    BundleIdentifierNotFoundError,
    DeploymentError,
    DeviceListError,
    DeviceReadinessTimeoutError,
    ProjectDescriptorError,
    UnresolvedBundleIdentifierError,
)
from .ios import SimulatorManager, read_bundle_identifier

__all__ = [
    "BundleIdentifierError",
    "BundleIdentifierNotFoundError",
    "DeploymentError",
    "DeviceListError",
    "DeviceReadinessTimeoutError",
    "EmulatorDevice",
    "EmulatorManager",
    "ProjectDescriptorError",
    "SimulatorDevice",
    "SimulatorManager",
    "UnresolvedBundleIdentifierError",
    "parse_version",
    "poll_until",
    "read_bundle_identifier",
    "select_best_emulator",
    "select_best_simulator",
]
