"""Interrupt payloads produced by suspending steps.

The payload is a closed union of two variants, discriminated by ``kind``:

- ``delegate``: ask the external actor to invoke a named capability with a given input.
- ``guidance``: give the external actor free-form instructions and the expected result shape.

Both variants are rendered into instructions by
:mod:`mobile_native_orchestrator.orchestrator.workflow.instructions`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter


class DelegateRequest(BaseModel):
    kind: Literal["delegate"] = "delegate"
    capability: str
    description: str
    input_schema: dict[str, Any] = Field(default_factory=dict)
    input: dict[str, Any] = Field(default_factory=dict)


class GuidanceRequest(BaseModel):
    kind: Literal["guidance"] = "guidance"
    node_id: str
    guidance: str
    result_schema: dict[str, Any] = Field(default_factory=dict)
    example_output: Any | None = None


InterruptPayload = Annotated[DelegateRequest | GuidanceRequest, Field(discriminator="kind")]

interrupt_adapter: TypeAdapter[DelegateRequest | GuidanceRequest] = TypeAdapter(InterruptPayload)


@dataclass(frozen=True, slots=True)
class Suspend:
    """Returned by a step instead of a patch to pause the session.

    The executor stops at the returning step. When the session is resumed, the
    step's registered continuation receives the external result.
    """

    payload: DelegateRequest | GuidanceRequest


def delegate(
    *,
    capability: str,
    description: str,
    input_model: type[BaseModel],
    values: dict[str, Any],
) -> Suspend:
    """Build a delegate suspension whose contract is the JSON schema of ``input_model``."""

    return Suspend(
        DelegateRequest(
            capability=capability,
            description=description,
            input_schema=input_model.model_json_schema(),
            input=values,
        )
    )
