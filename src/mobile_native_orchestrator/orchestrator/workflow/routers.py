"""Routing and retry decisions.

Each router is a pure function of workflow state that returns one of a fixed set
of step names. Routers are frozen dataclasses holding their destination names, so
the graph can register the declared set directly from :attr:`destinations`.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from .state import fatal_errors, is_absent

logger = logging.getLogger(__name__)

DEFAULT_MAX_BUILD_RETRIES = 3

ANDROID = "Android"
IOS = "iOS"


@dataclass(frozen=True, slots=True)
class BuildRetryRouter:
    """Decide what happens after a build attempt.

    Order matters: success before exhaustion, exhaustion before an explicit
    recovery refusal. ``recoveryReadyForRetry`` only short-circuits when it is
    explicitly ``False``; an absent value means recovery has not run yet.
    """

    deployment: str
    recovery: str
    failure: str

    @property
    def destinations(self) -> tuple[str, ...]:
        return (self.deployment, self.recovery, self.failure)

    def __call__(self, state: Mapping[str, Any]) -> str:
        if state.get("buildSuccessful") is True:
            logger.info("Build successful", extra={"next_step": self.deployment})
            return self.deployment

        attempts = _int_or_default(state.get("buildAttemptCount"), 0)
        max_retries = _int_or_default(state.get("maxBuildRetries"), DEFAULT_MAX_BUILD_RETRIES)
        if attempts >= max_retries:
            logger.warning(
                "Build retries exhausted",
                extra={"attempts": attempts, "max_retries": max_retries},
            )
            return self.failure

        if state.get("recoveryReadyForRetry") is False:
            logger.warning("Build recovery reported it cannot help")
            return self.failure

        logger.info("Build failed; attempting recovery", extra={"attempts": attempts})
        return self.recovery


@dataclass(frozen=True, slots=True)
class SetupValidationRouter:
    """Decide what happens after the platform setup check."""

    validated: str
    android_setup_recovery: str
    failure: str

    @property
    def destinations(self) -> tuple[str, ...]:
        return (self.validated, self.android_setup_recovery, self.failure)

    def __call__(self, state: Mapping[str, Any]) -> str:
        if state.get("validPlatformSetup") is True:
            return self.validated

        if state.get("platform") == ANDROID:
            if not is_absent(state.get("androidHome")) and not is_absent(state.get("javaHome")):
                # Paths were supplied and the setup is still invalid.
                logger.warning("Android setup invalid with SDK paths present")
                return self.failure
            logger.info("Android SDK paths missing; requesting them")
            return self.android_setup_recovery

        logger.warning("Platform setup invalid", extra={"platform": state.get("platform")})
        return self.failure


@dataclass(frozen=True, slots=True)
class PropertiesFulfilledRouter:
    """Route on whether every required property has a value in state."""

    required_properties: Sequence[str]
    fulfilled: str
    unfulfilled: str

    @property
    def destinations(self) -> tuple[str, ...]:
        return (self.fulfilled, self.unfulfilled)

    def missing(self, state: Mapping[str, Any]) -> list[str]:
        return [name for name in self.required_properties if is_absent(state.get(name))]

    def __call__(self, state: Mapping[str, Any]) -> str:
        missing = self.missing(state)
        if missing:
            logger.info("Properties still missing", extra={"missing": missing})
            return self.unfulfilled
        return self.fulfilled


@dataclass(frozen=True, slots=True)
class TemplatePropertiesFulfilledRouter:
    """Route on whether the selected template's required properties have values.

    A template without declared properties is fulfilled. Declared properties are
    unfulfilled until ``templateProperties`` exists and holds every required one.
    """

    fulfilled: str
    unfulfilled: str
    failure: str

    @property
    def destinations(self) -> tuple[str, ...]:
        return (self.fulfilled, self.unfulfilled, self.failure)

    def __call__(self, state: Mapping[str, Any]) -> str:
        errors = fatal_errors(state)
        if errors:
            logger.warning("Fatal errors detected", extra={"error_messages": errors})
            return self.failure
        if is_absent(state.get("selectedTemplate")):
            return self.unfulfilled

        metadata = state.get("templatePropertiesMetadata")
        if not isinstance(metadata, Mapping) or not metadata:
            return self.fulfilled
        values = state.get("templateProperties")
        if not isinstance(values, Mapping):
            return self.unfulfilled

        missing = [
            name
            for name, entry in metadata.items()
            if isinstance(entry, Mapping)
            and entry.get("required") is True
            and is_absent(values.get(name))
        ]
        if missing:
            logger.info("Template properties still missing", extra={"missing": missing})
            return self.unfulfilled
        return self.fulfilled


@dataclass(frozen=True, slots=True)
class FatalErrorsRouter:
    success: str
    failure: str

    @property
    def destinations(self) -> tuple[str, ...]:
        return (self.success, self.failure)

    def __call__(self, state: Mapping[str, Any]) -> str:
        errors = fatal_errors(state)
        if errors:
            logger.warning("Fatal errors detected", extra={"error_messages": errors})
            return self.failure
        return self.success


@dataclass(frozen=True, slots=True)
class ProjectGenerationRouter:
    success: str
    failure: str

    @property
    def destinations(self) -> tuple[str, ...]:
        return (self.success, self.failure)

    def __call__(self, state: Mapping[str, Any]) -> str:
        if not is_absent(state.get("projectPath")) and not fatal_errors(state):
            return self.success
        logger.warning(
            "Project generation failed",
            extra={"project_path": state.get("projectPath"), "error_messages": fatal_errors(state)},
        )
        return self.failure


@dataclass(frozen=True, slots=True)
class DeploymentPlatformRouter:
    ios: str
    android: str
    failure: str

    @property
    def destinations(self) -> tuple[str, ...]:
        return (self.ios, self.android, self.failure)

    def __call__(self, state: Mapping[str, Any]) -> str:
        platform = state.get("platform")
        if platform == IOS:
            return self.ios
        if platform == ANDROID:
            return self.android
        logger.warning("Unsupported deployment platform", extra={"platform": platform})
        return self.failure


@dataclass(frozen=True, slots=True)
class EmulatorFoundRouter:
    start: str
    create: str

    @property
    def destinations(self) -> tuple[str, ...]:
        return (self.start, self.create)

    def __call__(self, state: Mapping[str, Any]) -> str:
        if not is_absent(state.get("androidEmulatorName")):
            return self.start
        logger.info("No emulator selected; creating one")
        return self.create


@dataclass(frozen=True, slots=True)
class EmulatorCreatedRouter:
    start: str
    failure: str

    @property
    def destinations(self) -> tuple[str, ...]:
        return (self.start, self.failure)

    def __call__(self, state: Mapping[str, Any]) -> str:
        if not is_absent(state.get("androidEmulatorName")):
            return self.start
        logger.warning(
            "Emulator creation failed",
            extra={"error_messages": fatal_errors(state)},
        )
        return self.failure


def _int_or_default(value: object, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    return default
