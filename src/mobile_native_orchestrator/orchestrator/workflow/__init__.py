"""Workflow control core.

This package provides first-class types for:
- A step graph with unconditional and router edges
- An executor that suspends on interrupts and resumes through continuations
- Routing/retry decisions over workflow state
- Session checkpoints and the session orchestrator

Sessions are restartable: a checkpoint taken at a suspension point is enough to
resume in a new process.
"""

from .executor import Completed, GraphExecutor, Resumption, Suspended
from .graph import END, START, WorkflowGraph
from .interrupts import DelegateRequest, GuidanceRequest, Suspend
from .session import OrchestratorResponse, WorkflowOrchestrator

__all__ = [
    "END",
    "START",
    "Completed",
    "DelegateRequest",
    "GraphExecutor",
    "GuidanceRequest",
    "OrchestratorResponse",
    "Resumption",
    "Suspend",
    "Suspended",
    "WorkflowGraph",
    "WorkflowOrchestrator",
]
