from __future__ import annotations


class DeploymentError(RuntimeError):
    pass


class DeviceListError(DeploymentError):
    pass


class DeviceReadinessTimeoutError(DeploymentError):
    def __init__(self, device: str, elapsed: float, last_error: str | None = None) -> None:
        message = f"Device {device!r} did not become ready within {elapsed:.1f}s"
        if last_error:
            message = f"{message}. Last error: {last_error}"
        super().__init__(message)
        self.device = device
        self.elapsed = elapsed
        self.last_error = last_error


class ProjectDescriptorError(DeploymentError):
    """Zero or several project descriptor directories were found."""


class BundleIdentifierError(DeploymentError):
    pass


class BundleIdentifierNotFoundError(BundleIdentifierError):
    pass


class UnresolvedBundleIdentifierError(BundleIdentifierError):
    def __init__(self, bundle_id: str, descriptor: str) -> None:
        super().__init__(
            f"Bundle ID contains unresolved variables in project file {descriptor}: {bundle_id}. "
            "The bundle identifier must be fully resolved."
        )
        self.bundle_id = bundle_id
