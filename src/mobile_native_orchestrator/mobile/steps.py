"""Planning and build steps of the mobile native workflow.

Steps are small classes with a ``name``, a ``run`` method and, when they
suspend, a ``resume`` method receiving the external actor's result. They never
mutate the state they receive and return a partial patch instead.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ValidationError

from mobile_native_orchestrator.orchestrator.build import BuildExecutor
from mobile_native_orchestrator.orchestrator.deployment.android import android_environment
from mobile_native_orchestrator.orchestrator.execution import (
    CommandExecutionError,
    CommandRunner,
    LoggingProgressReporter,
)
from mobile_native_orchestrator.orchestrator.workflow.interrupts import (
    GuidanceRequest,
    Suspend,
    delegate,
)
from mobile_native_orchestrator.orchestrator.workflow.state import (
    append_fatal_error,
    fatal_errors,
    is_absent,
)

from . import capabilities
from .plugins import (
    REQUIRED_PLUGINS,
    PluginInfo,
    PluginInfoError,
    PluginRequirement,
    parse_plugin_info,
    version_at_least,
)
from .properties import (
    ANDROID,
    PLATFORM_API_LEVELS,
    USER_INPUT_PROPERTIES,
    PropertyMetadata,
)
from .template_properties import (
    extract_template_properties_metadata,
    extraction_schema,
    parse_metadata,
)

logger = logging.getLogger(__name__)

PLATFORM_CHECK_TIMEOUT_SECONDS = 20.0
PLUGIN_INSPECT_TIMEOUT_SECONDS = 10.0
PLUGIN_INSTALL_TIMEOUT_SECONDS = 60.0
SETUP_COMMAND = ("force", "lightning", "local", "setup")


def _missing(
    state: Mapping[str, Any], properties: Sequence[PropertyMetadata]
) -> list[PropertyMetadata]:
    return [p for p in properties if is_absent(state.get(p.name))]


def _validate_leniently(model: type[BaseModel], value: Any) -> BaseModel | None:
    """Validate ``value``, dropping fields that fail validation instead of the whole record."""

    if not isinstance(value, Mapping):
        logger.warning("Ignoring non-object result", extra={"result_type": type(value).__name__})
        return None
    try:
        return model.model_validate(dict(value))
    except ValidationError as e:
        invalid = {err["loc"][0] for err in e.errors() if err["loc"]}
        logger.warning(
            "Dropping invalid result fields",
            extra={"fields": sorted(str(f) for f in invalid), "error_count": e.error_count()},
        )
        cleaned = {k: v for k, v in value.items() if k not in invalid}
    try:
        return model.model_validate(cleaned)
    except ValidationError:
        logger.warning("Result still invalid after dropping fields")
        return None


class ExtractPropertiesStep:
    """Ask the external actor to pull project properties out of the raw user input."""

    name = "extractProperties"

    def __init__(self, properties: Sequence[PropertyMetadata] = USER_INPUT_PROPERTIES) -> None:
        self._properties = tuple(properties)

    def run(self, state: Mapping[str, Any]) -> Suspend | None:
        missing = _missing(state, self._properties)
        if not missing:
            logger.debug("All properties already present")
            return None

        request = capabilities.InputExtractionInput(
            userUtterance=state.get("userInput"),
            propertiesToExtract=[
                capabilities.PropertyToExtract(propertyName=p.name, description=p.description)
                for p in missing
            ],
            resultSchema=json.dumps(capabilities.ExtractedProperties.model_json_schema()),
        )
        return delegate(
            capability=capabilities.INPUT_EXTRACTION,
            description="Parse user input and extract structured project properties",
            input_model=capabilities.InputExtractionInput,
            values=request.model_dump(mode="json"),
        )

    def resume(self, state: Mapping[str, Any], value: Any) -> dict[str, Any]:
        extracted = _validate_leniently(capabilities.ExtractedProperties, value)
        if extracted is None:
            return {}
        patch = {
            k: v for k, v in extracted.model_dump(exclude_none=True).items() if not is_absent(v)
        }
        logger.info("Extracted properties", extra={"properties": sorted(patch)})
        return patch


class GetUserInputStep:
    """Ask the user for whatever properties are still missing."""

    name = "getUserInput"

    def __init__(self, properties: Sequence[PropertyMetadata] = USER_INPUT_PROPERTIES) -> None:
        self._properties = tuple(properties)

    def run(self, state: Mapping[str, Any]) -> Suspend:
        request = capabilities.GetInputInput(
            propertiesRequiringInput=[
                capabilities.PropertyRequiringInput(
                    propertyName=p.name,
                    friendlyName=p.friendly_name,
                    description=p.description,
                )
                for p in _missing(state, self._properties)
            ]
        )
        return delegate(
            capability=capabilities.GET_INPUT,
            description="Prompt the user for the missing project properties",
            input_model=capabilities.GetInputInput,
            values=request.model_dump(mode="json"),
        )

    def resume(self, state: Mapping[str, Any], value: Any) -> dict[str, Any]:
        if isinstance(value, Mapping) and "userUtterance" in value:
            return {"userInput": capabilities.GetInputResult.model_validate(value).userUtterance}
        return {"userInput": value}


class CheckPluginSetupStep:
    """Make sure the required ``sf`` plugins are installed at a sufficient version.

    A missing plugin is installed and an outdated one upgraded, each followed by
    a second inspection. Every failure becomes a fatal error message.
    """

    name = "checkPluginSetup"

    def __init__(
        self,
        runner: CommandRunner,
        requirements: Sequence[PluginRequirement] = REQUIRED_PLUGINS,
    ) -> None:
        self._runner = runner
        self._requirements = tuple(requirements)

    def run(self, state: Mapping[str, Any]) -> dict[str, Any]:
        errors: list[str] = []
        for requirement in self._requirements:
            errors.extend(self._check(requirement))
        if errors:
            logger.warning("Plugin setup is not valid", extra={"error_count": len(errors)})
            return {"validPluginSetup": False, "workflowFatalErrorMessages": errors}
        return {"validPluginSetup": True}

    def _check(self, requirement: PluginRequirement) -> list[str]:
        try:
            info = self._inspect(requirement)
        except (CommandExecutionError, PluginInfoError) as e:
            logger.info(
                "Plugin not installed; installing",
                extra={"plugin": requirement.name, "error": str(e)},
            )
            return self._install(requirement, upgrade=False)

        if not _sufficient(info.version, requirement):
            logger.info(
                "Plugin version below minimum; upgrading",
                extra={"plugin": requirement.name, "version": info.version},
            )
            return self._install(requirement, upgrade=True)

        logger.debug(
            "Plugin check passed", extra={"plugin": requirement.name, "version": info.version}
        )
        return []

    def _install(self, requirement: PluginRequirement, *, upgrade: bool) -> list[str]:
        action, done = ("upgrade", "upgraded") if upgrade else ("install", "installed")
        try:
            result = self._runner.execute(
                "sf",
                ["plugins", "install", requirement.install_spec],
                timeout=PLUGIN_INSTALL_TIMEOUT_SECONDS,
                description=f"Plugin {action}",
            )
            if not result.success:
                raise CommandExecutionError(
                    result.stderr.strip() or f"exit code {result.exit_code}"
                )
            info = self._inspect(requirement)
        except (CommandExecutionError, PluginInfoError) as e:
            return [f"{requirement.name}: Failed to {action} plugin: {e}"]

        if not _sufficient(info.version, requirement):
            still = " still" if upgrade else ""
            return [
                f"{requirement.name}: Plugin {done} but version {info.version} is{still} "
                f"below minimum {requirement.minimum_version}"
            ]
        logger.info(
            "Plugin setup updated",
            extra={"plugin": requirement.name, "action": action, "version": info.version},
        )
        return []

    def _inspect(self, requirement: PluginRequirement) -> PluginInfo:
        result = self._runner.execute(
            "sf",
            ["plugins", "inspect", requirement.name, "--json"],
            timeout=PLUGIN_INSPECT_TIMEOUT_SECONDS,
            description="Plugin check",
        )
        if not result.success:
            raise CommandExecutionError(result.stderr.strip() or f"exit code {result.exit_code}")
        return parse_plugin_info(result.stdout)


def _sufficient(version: str, requirement: PluginRequirement) -> bool:
    try:
        return version_at_least(version, requirement.minimum_version)
    except ValueError:
        logger.warning(
            "Cannot compare plugin version", extra={"plugin": requirement.name, "version": version}
        )
        return False


class _RequirementResult(BaseModel):
    title: str
    hasPassed: bool
    message: str
    duration: str | None = None


class _PlatformCheckReport(BaseModel):
    hasMetAllRequirements: bool
    tests: list[_RequirementResult]
    totalDuration: str | None = None


class CheckPlatformSetupStep:
    """Run the platform requirement check for the selected platform.

    On Android the check only runs once both SDK locations are known, either
    from state or from the configured seeds.
    """

    name = "checkPlatformSetup"

    def __init__(
        self,
        runner: CommandRunner,
        *,
        android_home: str | None = None,
        java_home: str | None = None,
    ) -> None:
        self._runner = runner
        self._android_home = android_home
        self._java_home = java_home

    def run(self, state: Mapping[str, Any]) -> dict[str, Any]:
        platform = state.get("platform")
        api_level = PLATFORM_API_LEVELS.get(platform) if isinstance(platform, str) else None
        if api_level is None:
            return {
                "validPlatformSetup": False,
                "workflowFatalErrorMessages": [f"Invalid platform: {platform}"],
            }

        patch: dict[str, Any] = {}
        env: dict[str, str] = {}
        if platform == ANDROID:
            android_home = state.get("androidHome") or self._android_home
            java_home = state.get("javaHome") or self._java_home
            if is_absent(android_home) or is_absent(java_home):
                logger.info("Android SDK locations unknown; skipping setup check")
                return {"validPlatformSetup": False}
            patch.update(androidHome=android_home, javaHome=java_home)
            env = android_environment(android_home, java_home)

        args = [*SETUP_COMMAND, "-p", platform.lower(), "-l", api_level, "--json"]
        command = f"sf {' '.join(args)}"
        try:
            result = self._runner.execute(
                "sf",
                args,
                timeout=PLATFORM_CHECK_TIMEOUT_SECONDS,
                env=env,
                description="Platform setup check",
            )
        except CommandExecutionError as e:
            logger.warning("Platform check command failed", extra={"error": str(e)})
            return {
                **patch,
                "validPlatformSetup": False,
                "workflowFatalErrorMessages": [f"Error executing platform check command: {e}"],
            }

        valid, errors = self._parse_report(result.stdout, command)
        logger.info(
            "Platform setup checked",
            extra={"platform": platform, "valid": valid, "error_count": len(errors)},
        )
        return {**patch, "validPlatformSetup": valid, "workflowFatalErrorMessages": errors}

    @staticmethod
    def _parse_report(output: str, command: str) -> tuple[bool, list[str]]:
        try:
            report = _PlatformCheckReport.model_validate(json.loads(output)["outputContent"])
        except (json.JSONDecodeError, KeyError, TypeError, ValidationError) as e:
            return False, [f"Command output is not valid JSON: {e}"]
        errors = [
            f'Platform setup check for "{command}" failed: {test.message}'
            for test in report.tests
            if not test.hasPassed
        ]
        return report.hasMetAllRequirements, errors


class ExtractAndroidSetupStep:
    """Ask for ANDROID_HOME and JAVA_HOME, then keep only locations that exist."""

    name = "extractAndroidSetup"

    GUIDANCE = (
        "The Android platform setup check could not run because the Android SDK and JDK "
        "locations are unknown. Ask the user for the ANDROID_HOME directory (the Android SDK "
        "root) and the JAVA_HOME directory (a JDK 17 installation), or determine them from "
        "the user's environment, and report both as absolute paths."
    )

    def run(self, state: Mapping[str, Any]) -> Suspend:
        return Suspend(
            GuidanceRequest(
                node_id=self.name,
                guidance=self.GUIDANCE,
                result_schema=capabilities.AndroidSetupResult.model_json_schema(),
                example_output={
                    "androidHome": "/Users/me/Library/Android/sdk",
                    "javaHome": "/Library/Java/JavaVirtualMachines/jdk-17.jdk/Contents/Home",
                },
            )
        )

    def resume(self, state: Mapping[str, Any], value: Any) -> dict[str, Any]:
        result = _validate_leniently(capabilities.AndroidSetupResult, value)
        if result is None:
            result = capabilities.AndroidSetupResult()

        patch: dict[str, Any] = {}
        errors: list[str] = []
        for key, label, path in (
            ("androidHome", "ANDROID_HOME", result.androidHome),
            ("javaHome", "JAVA_HOME", result.javaHome),
        ):
            if not is_absent(path) and Path(path).is_dir():
                patch[key] = path
            elif not is_absent(path):
                patch[key] = None
                errors.append(f"{label} path does not exist: {path}")
            else:
                patch[key] = None
                errors.append(f"{label} was not provided")

        patch["workflowFatalErrorMessages"] = errors
        logger.info(
            "Android setup received",
            extra={"android_home": patch["androidHome"], "java_home": patch["javaHome"]},
        )
        return patch


class SelectTemplateStep:
    name = "selectTemplate"

    def run(self, state: Mapping[str, Any]) -> Suspend:
        return delegate(
            capability=capabilities.TEMPLATE_DISCOVERY,
            description="Discover the available project templates and select one for the app",
            input_model=capabilities.TemplateDiscoveryInput,
            values={"platform": state.get("platform")},
        )

    def resume(self, state: Mapping[str, Any], value: Any) -> dict[str, Any]:
        try:
            result = capabilities.TemplateDiscoveryResult.model_validate(value)
        except ValidationError as e:
            logger.warning(
                "Template discovery returned no template",
                extra={"error_count": e.error_count()},
            )
            return append_fatal_error(state, "Template discovery did not select a template")
        logger.info("Template selected", extra={"template": result.selectedTemplate})
        return {
            "selectedTemplate": result.selectedTemplate,
            "templatePropertiesMetadata": extract_template_properties_metadata(
                result.selectedTemplate, result.templateOptions
            ),
        }


class ExtractTemplatePropertiesStep:
    """Pull the selected template's own properties out of the user's answer.

    Templates without declared properties get an empty mapping straight away.
    Until the user has been asked, the step does nothing and lets the router
    send the workflow to :class:`GetTemplatePropertiesInputStep`.
    """

    name = "extractTemplateProperties"

    def run(self, state: Mapping[str, Any]) -> Suspend | dict[str, Any] | None:
        metadata = parse_metadata(state.get("templatePropertiesMetadata"))
        if not metadata:
            return {"templateProperties": {}}
        utterance = state.get("templatePropertiesUserInput")
        if is_absent(utterance):
            return None

        request = capabilities.InputExtractionInput(
            userUtterance=utterance,
            propertiesToExtract=[
                capabilities.PropertyToExtract(propertyName=name, description=entry.description)
                for name, entry in metadata.items()
            ],
            resultSchema=json.dumps(extraction_schema(metadata)),
        )
        return delegate(
            capability=capabilities.INPUT_EXTRACTION,
            description="Parse user input and extract the selected template's properties",
            input_model=capabilities.InputExtractionInput,
            values=request.model_dump(mode="json"),
        )

    def resume(self, state: Mapping[str, Any], value: Any) -> dict[str, Any]:
        metadata = parse_metadata(state.get("templatePropertiesMetadata"))
        current = state.get("templateProperties")
        properties: dict[str, str] = dict(current) if isinstance(current, Mapping) else {}
        if isinstance(value, Mapping):
            for name in metadata:
                extracted = value.get(name)
                if isinstance(extracted, str) and extracted.strip():
                    properties[name] = extracted
        else:
            logger.warning(
                "Ignoring non-object result", extra={"result_type": type(value).__name__}
            )
        logger.info("Extracted template properties", extra={"properties": sorted(properties)})
        return {"templateProperties": properties}


class GetTemplatePropertiesInputStep:
    """Ask the user for the template properties that still have no value."""

    name = "getTemplatePropertiesInput"

    def run(self, state: Mapping[str, Any]) -> Suspend | None:
        metadata = parse_metadata(state.get("templatePropertiesMetadata"))
        if not metadata:
            return None
        current = state.get("templateProperties")
        known = current if isinstance(current, Mapping) else {}
        request = capabilities.GetInputInput(
            propertiesRequiringInput=[
                capabilities.PropertyRequiringInput(
                    propertyName=name, friendlyName=name, description=entry.description
                )
                for name, entry in metadata.items()
                if is_absent(known.get(name))
            ]
        )
        return delegate(
            capability=capabilities.GET_INPUT,
            description="Prompt the user for the selected template's properties",
            input_model=capabilities.GetInputInput,
            values=request.model_dump(mode="json"),
        )

    def resume(self, state: Mapping[str, Any], value: Any) -> dict[str, Any]:
        if isinstance(value, Mapping) and "userUtterance" in value:
            value = capabilities.GetInputResult.model_validate(value).userUtterance
        return {"templatePropertiesUserInput": value}


class GenerateProjectStep:
    name = "generateProject"

    def run(self, state: Mapping[str, Any]) -> Suspend | dict[str, Any] | None:
        if fatal_errors(state):
            return None
        try:
            request = capabilities.ProjectGenerationInput.model_validate(
                {
                    key: state.get(key)
                    for key in capabilities.ProjectGenerationInput.model_fields
                }
            )
        except ValidationError as e:
            logger.warning("Cannot generate project", extra={"error_count": e.error_count()})
            return append_fatal_error(
                state, f"Project generation input is incomplete: {e.error_count()} invalid field(s)"
            )
        return delegate(
            capability=capabilities.PROJECT_GENERATION,
            description="Generate the mobile app project from the selected template",
            input_model=capabilities.ProjectGenerationInput,
            values=request.model_dump(mode="json"),
        )

    def resume(self, state: Mapping[str, Any], value: Any) -> dict[str, Any]:
        try:
            result = capabilities.ProjectGenerationResult.model_validate(value)
        except ValidationError:
            return append_fatal_error(state, "Project generation did not report a project path")
        logger.info("Project generated", extra={"project_path": result.projectPath})
        return {"projectPath": result.projectPath}


class BuildProjectStep:
    """Build the generated project and count the attempt."""

    name = "buildProject"

    def __init__(self, executor: BuildExecutor, *, max_build_retries: int) -> None:
        self._executor = executor
        self._max_build_retries = max_build_retries

    def run(self, state: Mapping[str, Any]) -> dict[str, Any]:
        attempt = int(state.get("buildAttemptCount") or 0) + 1
        build_type = state.get("buildType") or "debug"
        patch: dict[str, Any] = {"buildAttemptCount": attempt, "buildType": build_type}
        if state.get("maxBuildRetries") is None:
            patch["maxBuildRetries"] = self._max_build_retries

        project_path = state.get("projectPath")
        project_name = state.get("projectName")
        if is_absent(project_path) or is_absent(project_name):
            return {
                **patch,
                "buildSuccessful": False,
                **append_fatal_error(state, "Project path and name must be known to build"),
            }

        logger.info(
            "Building project",
            extra={"attempt": attempt, "platform": state.get("platform")},
        )
        outcome = self._executor.execute(
            str(state.get("platform")),
            Path(project_path),
            project_name,
            progress_reporter=LoggingProgressReporter(self.name),
            build_type=build_type,
            env=android_environment(state.get("androidHome"), state.get("javaHome")),
        )
        patch["buildSuccessful"] = outcome.build_successful
        patch["buildOutputFilePath"] = (
            str(outcome.build_output_file_path) if outcome.build_output_file_path else None
        )
        return patch


class BuildRecoveryStep:
    """Hand the failed build log to the recovery capability."""

    name = "buildRecovery"

    def run(self, state: Mapping[str, Any]) -> Suspend | dict[str, Any]:
        try:
            request = capabilities.BuildRecoveryInput(
                platform=state.get("platform"),
                projectPath=state.get("projectPath"),
                projectName=state.get("projectName"),
                buildOutputFilePath=state.get("buildOutputFilePath"),
                attemptNumber=state.get("buildAttemptCount") or 1,
            )
        except ValidationError as e:
            logger.warning("Build recovery not possible", extra={"error_count": e.error_count()})
            return self._record(state, [], ready_for_retry=False)
        return delegate(
            capability=capabilities.BUILD_RECOVERY,
            description="Analyze the build failure and fix common issues in the project",
            input_model=capabilities.BuildRecoveryInput,
            values=request.model_dump(mode="json"),
        )

    def resume(self, state: Mapping[str, Any], value: Any) -> dict[str, Any]:
        try:
            result = capabilities.BuildRecoveryResult.model_validate(value)
        except ValidationError as e:
            logger.warning("Invalid build recovery result", extra={"error_count": e.error_count()})
            result = capabilities.BuildRecoveryResult()
        return self._record(state, result.fixesAttempted, ready_for_retry=result.readyForRetry)

    @staticmethod
    def _record(
        state: Mapping[str, Any], fixes: list[str], *, ready_for_retry: bool
    ) -> dict[str, Any]:
        attempt = state.get("buildAttemptCount") or 1
        summary = ", ".join(fixes) if fixes else "No fixes could be applied"
        messages = [
            *(state.get("buildErrorMessages") or []),
            f"Recovery attempt {attempt}: {summary}",
        ]
        logger.info(
            "Build recovery recorded",
            extra={"attempt": attempt, "ready_for_retry": ready_for_retry},
        )
        return {"buildErrorMessages": messages, "recoveryReadyForRetry": ready_for_retry}


class DeployAppStep:
    name = "deployApp"

    def run(self, state: Mapping[str, Any]) -> dict[str, Any]:
        logger.info("Deploying app", extra={"platform": state.get("platform")})
        return {"deploymentStatus": "pending"}


class CompletionStep:
    name = "completion"

    def run(self, state: Mapping[str, Any]) -> dict[str, Any]:
        logger.info("Workflow completed", extra={"project_path": state.get("projectPath")})
        return {"workflowStatus": "completed"}


class FailureStep:
    name = "failure"

    def run(self, state: Mapping[str, Any]) -> dict[str, Any]:
        logger.error(
            "Workflow failed",
            extra={
                "error_messages": fatal_errors(state),
                "build_error_messages": state.get("buildErrorMessages") or [],
            },
        )
        return {"workflowStatus": "failed"}
