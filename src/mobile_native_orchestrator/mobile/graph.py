"""Wiring of the mobile native workflow graph.

START -> extractProperties -> (checkPluginSetup | getUserInput)
checkPluginSetup -> (checkPlatformSetup | failure)
checkPlatformSetup -> (selectTemplate | extractAndroidSetup | failure)
selectTemplate -> extractTemplateProperties
extractTemplateProperties -> (generateProject | getTemplatePropertiesInput | failure)
generateProject -> (buildProject | failure)
buildProject -> (deployApp | buildRecovery | failure); buildRecovery -> buildProject
deployApp -> iOS or Android deployment chain -> completion | failure -> END
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from mobile_native_orchestrator.orchestrator.build import BuildExecutor
from mobile_native_orchestrator.orchestrator.config import OrchestratorSettings
from mobile_native_orchestrator.orchestrator.deployment import EmulatorManager, SimulatorManager
from mobile_native_orchestrator.orchestrator.execution import (
    CommandRunner,
    LoggingProgressReporter,
)
from mobile_native_orchestrator.orchestrator.workflow.checkpoint import (
    CheckpointStore,
    create_checkpoint_store,
)
from mobile_native_orchestrator.orchestrator.workflow.graph import END, START, WorkflowGraph
from mobile_native_orchestrator.orchestrator.workflow.routers import (
    BuildRetryRouter,
    DeploymentPlatformRouter,
    EmulatorCreatedRouter,
    EmulatorFoundRouter,
    FatalErrorsRouter,
    ProjectGenerationRouter,
    PropertiesFulfilledRouter,
    SetupValidationRouter,
    TemplatePropertiesFulfilledRouter,
)
from mobile_native_orchestrator.orchestrator.workflow.session import WorkflowOrchestrator

from . import deployment_steps as deploy
from . import steps
from .properties import REQUIRED_PROPERTIES

logger = logging.getLogger(__name__)

WORKFLOW_NAME = "mobile-native"


@dataclass(frozen=True, slots=True)
class MobileWorkflowDependencies:
    """Collaborators shared by the workflow steps."""

    runner: CommandRunner
    build_executor: BuildExecutor
    simulators: SimulatorManager
    emulators: deploy.EmulatorManagerFactory
    build_output_path: Path
    max_build_retries: int = 3
    android_home: str | None = None
    java_home: str | None = None


def _add(graph: WorkflowGraph, step: Any) -> None:
    graph.add_step(step.name, step.run, resume=getattr(step, "resume", None))


def build_mobile_graph(deps: MobileWorkflowDependencies) -> WorkflowGraph:
    graph = WorkflowGraph(WORKFLOW_NAME)

    extract = steps.ExtractPropertiesStep()
    get_input = steps.GetUserInputStep()
    plugin_check = steps.CheckPluginSetupStep(deps.runner)
    platform_check = steps.CheckPlatformSetupStep(
        deps.runner, android_home=deps.android_home, java_home=deps.java_home
    )
    android_setup = steps.ExtractAndroidSetupStep()
    select_template = steps.SelectTemplateStep()
    extract_template_properties = steps.ExtractTemplatePropertiesStep()
    get_template_properties = steps.GetTemplatePropertiesInputStep()
    generate = steps.GenerateProjectStep()
    build = steps.BuildProjectStep(deps.build_executor, max_build_retries=deps.max_build_retries)
    recovery = steps.BuildRecoveryStep()
    deploy_app = steps.DeployAppStep()
    completion = steps.CompletionStep()
    failure = steps.FailureStep()

    ios_chain = [
        deploy.IosSelectSimulatorStep(deps.simulators),
        deploy.IosBootSimulatorStep(deps.simulators),
        deploy.IosInstallAppStep(deps.simulators, deps.build_output_path),
        deploy.IosLaunchAppStep(deps.simulators),
    ]
    android_select = deploy.AndroidSelectEmulatorStep(deps.emulators)
    android_create = deploy.AndroidCreateEmulatorStep(deps.emulators)
    android_chain = [
        deploy.AndroidStartEmulatorStep(deps.emulators),
        deploy.AndroidInstallAppStep(deps.emulators),
        deploy.AndroidLaunchAppStep(deps.emulators),
    ]

    for step in (
        extract,
        get_input,
        plugin_check,
        platform_check,
        android_setup,
        select_template,
        extract_template_properties,
        get_template_properties,
        generate,
        build,
        recovery,
        deploy_app,
        *ios_chain,
        android_select,
        android_create,
        *android_chain,
        completion,
        failure,
    ):
        _add(graph, step)

    graph.add_edge(START, extract.name)
    graph.add_router(
        extract.name,
        PropertiesFulfilledRouter(
            REQUIRED_PROPERTIES, fulfilled=plugin_check.name, unfulfilled=get_input.name
        ),
    )
    graph.add_edge(get_input.name, extract.name)
    graph.add_router(
        plugin_check.name, FatalErrorsRouter(success=platform_check.name, failure=failure.name)
    )
    graph.add_router(
        platform_check.name,
        SetupValidationRouter(
            validated=select_template.name,
            android_setup_recovery=android_setup.name,
            failure=failure.name,
        ),
    )
    graph.add_edge(android_setup.name, platform_check.name)
    graph.add_edge(select_template.name, extract_template_properties.name)
    graph.add_router(
        extract_template_properties.name,
        TemplatePropertiesFulfilledRouter(
            fulfilled=generate.name,
            unfulfilled=get_template_properties.name,
            failure=failure.name,
        ),
    )
    graph.add_edge(get_template_properties.name, extract_template_properties.name)
    graph.add_router(
        generate.name, ProjectGenerationRouter(success=build.name, failure=failure.name)
    )
    graph.add_router(
        build.name,
        BuildRetryRouter(deployment=deploy_app.name, recovery=recovery.name, failure=failure.name),
    )
    graph.add_edge(recovery.name, build.name)
    graph.add_router(
        deploy_app.name,
        DeploymentPlatformRouter(
            ios=ios_chain[0].name, android=android_select.name, failure=failure.name
        ),
    )

    _chain(graph, [s.name for s in ios_chain], completion.name, failure.name)

    graph.add_router(
        android_select.name,
        EmulatorFoundRouter(start=android_chain[0].name, create=android_create.name),
    )
    graph.add_router(
        android_create.name,
        EmulatorCreatedRouter(start=android_chain[0].name, failure=failure.name),
    )
    _chain(graph, [s.name for s in android_chain], completion.name, failure.name)

    graph.add_edge(completion.name, END)
    graph.add_edge(failure.name, END)

    graph.validate()
    return graph


def _chain(graph: WorkflowGraph, names: list[str], done: str, failure: str) -> None:
    """Link ``names`` in order, checking for fatal errors after each step."""

    for current, following in zip(names, [*names[1:], done], strict=True):
        graph.add_router(current, FatalErrorsRouter(success=following, failure=failure))


def build_dependencies(settings: OrchestratorSettings) -> MobileWorkflowDependencies:
    runner = CommandRunner(default_timeout=settings.command_timeout_seconds)
    simulators = SimulatorManager(
        runner,
        progress_reporter=LoggingProgressReporter("ios-simulator"),
        poll_interval_seconds=settings.readiness_poll_interval_seconds,
        max_wait_seconds=settings.readiness_max_wait_seconds,
    )

    def emulators(env: Mapping[str, str]) -> EmulatorManager:
        return EmulatorManager(
            runner,
            env=env,
            progress_reporter=LoggingProgressReporter("android-emulator"),
            max_wait_seconds=settings.readiness_max_wait_seconds,
        )

    return MobileWorkflowDependencies(
        runner=runner,
        build_executor=BuildExecutor(runner, settings.build_output_path),
        simulators=simulators,
        emulators=emulators,
        build_output_path=settings.build_output_path,
        max_build_retries=settings.max_build_retries,
        android_home=settings.android_home,
        java_home=settings.java_home,
    )


def build_orchestrator(
    settings: OrchestratorSettings, *, store: CheckpointStore | None = None
) -> WorkflowOrchestrator:
    """Assemble the mobile workflow orchestrator from settings."""

    graph = build_mobile_graph(build_dependencies(settings))
    if store is None:
        store = create_checkpoint_store(settings.checkpoint_backend, settings.checkpoint_dir)
    logger.debug(
        "Orchestrator assembled",
        extra={"workflow": graph.name, "checkpoint_backend": settings.checkpoint_backend},
    )
    return WorkflowOrchestrator(graph, store, session_prefix=settings.session_prefix)
