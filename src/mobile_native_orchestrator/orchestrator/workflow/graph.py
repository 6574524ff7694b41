"""Workflow graph definition.

A graph is a set of named steps connected by edges. Each step has exactly one
outgoing edge, which is either unconditional (``a -> b``) or a router that picks
the next step from a fixed set of declared destinations.

Steps with a suspension point register a continuation alongside their main
function. The continuation receives the post-suspension state and the external
result, and returns the patch the step would have produced.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Protocol

from .interrupts import Suspend
from .state import StatePatch

START = "__start__"
END = "__end__"

StepResult = StatePatch | Suspend | None
StepFunction = Callable[[Mapping[str, Any]], StepResult]
Continuation = Callable[[Mapping[str, Any], Any], StepResult]


class GraphDefinitionError(ValueError):
    pass


class Router(Protocol):
    """A pure decision over state returning one of its declared destinations."""

    @property
    def destinations(self) -> tuple[str, ...]: ...

    def __call__(self, state: Mapping[str, Any]) -> str: ...


@dataclass(frozen=True, slots=True)
class Step:
    name: str
    run: StepFunction
    resume: Continuation | None = None


@dataclass(frozen=True, slots=True)
class Edge:
    target: str | None = None
    router: Router | None = None
    destinations: tuple[str, ...] = ()

    @property
    def is_conditional(self) -> bool:
        return self.router is not None


class WorkflowGraph:
    """Mutable builder plus read access used by the executor.

    Call :meth:`validate` (or let the executor do it) once all steps and edges
    are registered.
    """

    def __init__(self, name: str = "workflow") -> None:
        self.name = name
        self._steps: dict[str, Step] = {}
        self._edges: dict[str, Edge] = {}

    def add_step(
        self,
        name: str,
        run: StepFunction,
        *,
        resume: Continuation | None = None,
    ) -> WorkflowGraph:
        if name in (START, END):
            raise GraphDefinitionError(f"Reserved step name: {name}")
        if name in self._steps:
            raise GraphDefinitionError(f"Duplicate step: {name}")
        self._steps[name] = Step(name=name, run=run, resume=resume)
        return self

    def add_edge(self, source: str, target: str) -> WorkflowGraph:
        self._claim_source(source)
        self._edges[source] = Edge(target=target, destinations=(target,))
        return self

    def add_router(
        self,
        source: str,
        router: Router,
        destinations: Iterable[str] | None = None,
    ) -> WorkflowGraph:
        declared = tuple(destinations) if destinations is not None else tuple(router.destinations)
        if not declared:
            raise GraphDefinitionError(f"Router from {source} declares no destinations")
        self._claim_source(source)
        self._edges[source] = Edge(router=router, destinations=declared)
        return self

    def _claim_source(self, source: str) -> None:
        if source == END:
            raise GraphDefinitionError("END cannot have outgoing edges")
        if source in self._edges:
            raise GraphDefinitionError(f"Step already has an outgoing edge: {source}")

    def step(self, name: str) -> Step:
        try:
            return self._steps[name]
        except KeyError:
            raise GraphDefinitionError(f"Unknown step: {name}") from None

    def edge(self, source: str) -> Edge:
        try:
            return self._edges[source]
        except KeyError:
            raise GraphDefinitionError(f"Step has no outgoing edge: {source}") from None

    @property
    def step_names(self) -> list[str]:
        return list(self._steps)

    def validate(self) -> None:
        """Check that the graph is fully wired.

        Raises:
            GraphDefinitionError: on a missing START edge, a dangling target, or a
                step without an outgoing edge.
        """

        if START not in self._edges:
            raise GraphDefinitionError("Graph has no edge from START")

        known = set(self._steps) | {END}
        for source, edge in self._edges.items():
            if source != START and source not in self._steps:
                raise GraphDefinitionError(f"Edge from unknown step: {source}")
            for target in edge.destinations:
                if target not in known:
                    raise GraphDefinitionError(f"Edge from {source} to unknown step: {target}")

        for name in self._steps:
            if name not in self._edges:
                raise GraphDefinitionError(f"Step has no outgoing edge: {name}")
