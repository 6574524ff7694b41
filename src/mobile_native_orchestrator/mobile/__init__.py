"""The mobile native app workflow: gather properties, check setup, generate, build, deploy."""

from .graph import (
    MobileWorkflowDependencies,
    build_dependencies,
    build_mobile_graph,
    build_orchestrator,
)

__all__ = [
    "MobileWorkflowDependencies",
    "build_dependencies",
    "build_mobile_graph",
    "build_orchestrator",
]
