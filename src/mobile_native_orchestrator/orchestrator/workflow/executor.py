"""Graph executor.

The executor advances a session through a :class:`WorkflowGraph` one step at a
time until a step suspends or END is reached.

Semantics:
    - A step returns a patch (merged shallowly onto state) or a :class:`Suspend`.
    - After a patch is merged, the outgoing edge is resolved against the
      post-merge state.
    - A suspended step is never re-run on resumption. Its registered
      continuation receives the external result instead.
    - Step exceptions propagate unchanged and nothing from the failing step is
      merged.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from .graph import END, START, GraphDefinitionError, WorkflowGraph
from .interrupts import DelegateRequest, GuidanceRequest, Suspend
from .state import WorkflowState, merge_patch

logger = logging.getLogger(__name__)

DEFAULT_MAX_STEPS = 250


class UnknownRouteError(RuntimeError):
    pass


class ResumeError(RuntimeError):
    pass


class StepLimitExceededError(RuntimeError):
    pass


@dataclass(frozen=True, slots=True)
class Resumption:
    """Where a session stopped and the external result to resume it with."""

    step: str
    value: Any


@dataclass(frozen=True, slots=True)
class Suspended:
    step: str
    payload: DelegateRequest | GuidanceRequest
    state: WorkflowState


@dataclass(frozen=True, slots=True)
class Completed:
    state: WorkflowState


RunResult = Suspended | Completed


class GraphExecutor:
    def __init__(self, graph: WorkflowGraph, *, max_steps: int = DEFAULT_MAX_STEPS) -> None:
        if max_steps <= 0:
            raise ValueError("max_steps must be > 0")
        graph.validate()
        self._graph = graph
        self._max_steps = max_steps

    @property
    def graph(self) -> WorkflowGraph:
        return self._graph

    def run(
        self,
        state: Mapping[str, Any],
        resumption: Resumption | None = None,
    ) -> RunResult:
        current_state: WorkflowState = dict(state)

        if resumption is None:
            current = self._next(START, current_state)
        else:
            if resumption.step == END:
                logger.debug("Resumed a concluded session")
                return Completed(state=current_state)
            step = self._graph.step(resumption.step)
            if step.resume is None:
                raise ResumeError(f"Step {step.name!r} has no continuation to resume")
            logger.debug("Resuming step", extra={"step": step.name})
            result = step.resume(current_state, resumption.value)
            outcome = self._apply(step.name, result, current_state)
            if isinstance(outcome, Suspended):
                return outcome
            current_state = outcome
            current = self._next(step.name, current_state)

        transitions = 0
        while current != END:
            transitions += 1
            if transitions > self._max_steps:
                raise StepLimitExceededError(
                    f"Exceeded {self._max_steps} step transitions in graph {self._graph.name!r}"
                )

            step = self._graph.step(current)
            logger.debug("Running step", extra={"step": current})
            outcome = self._apply(current, step.run(current_state), current_state)
            if isinstance(outcome, Suspended):
                return outcome
            current_state = outcome
            current = self._next(current, current_state)

        return Completed(state=current_state)

    def _apply(
        self, step_name: str, result: object, state: WorkflowState
    ) -> WorkflowState | Suspended:
        if isinstance(result, Suspend):
            logger.info(
                "Step suspended",
                extra={"step": step_name, "interrupt_kind": result.payload.kind},
            )
            return Suspended(step=step_name, payload=result.payload, state=state)
        if result is None or isinstance(result, Mapping):
            return merge_patch(state, result)
        raise TypeError(
            f"Step {step_name!r} returned {type(result).__name__}; expected a mapping or Suspend"
        )

    def _next(self, source: str, state: Mapping[str, Any]) -> str:
        edge = self._graph.edge(source)
        if edge.router is None:
            if edge.target is None:
                raise GraphDefinitionError(f"Edge from {source!r} has no target or router")
            return edge.target

        target = edge.router(state)
        if target not in edge.destinations:
            raise UnknownRouteError(
                f"Router after {source!r} returned {target!r}; declared: {list(edge.destinations)}"
            )
        return target


def run(
    graph: WorkflowGraph,
    state: Mapping[str, Any],
    resumption: Resumption | None = None,
) -> RunResult:
    """Run ``graph`` once from START, or from a suspension point when resuming."""

    return GraphExecutor(graph).run(state, resumption)
