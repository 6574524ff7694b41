"""``sf`` CLI plugins the workflow depends on, and their version checks."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError


@dataclass(frozen=True, slots=True)
class PluginRequirement:
    name: str
    minimum_version: str
    install_tag: str = ""

    @property
    def install_spec(self) -> str:
        return f"{self.name}{self.install_tag}"


REQUIRED_PLUGINS: tuple[PluginRequirement, ...] = (
    PluginRequirement("sfdx-mobilesdk-plugin", "13.2.0-alpha.1", "@alpha"),
    PluginRequirement("@salesforce/lwc-dev-mobile", "3.0.0-alpha.3", "@alpha"),
)


class PluginInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    version: str
    type: str | None = None


class PluginInfoError(ValueError):
    pass


def parse_plugin_info(output: str) -> PluginInfo:
    """Read ``sf plugins inspect --json`` output.

    The plugin record may be wrapped in ``result`` and/or a one-element list.
    """

    try:
        data: Any = json.loads(output)
        if isinstance(data, dict) and data.get("result"):
            data = data["result"]
        if isinstance(data, list):
            data = data[0] if data else None
        return PluginInfo.model_validate(data)
    except (json.JSONDecodeError, ValidationError) as e:
        raise PluginInfoError(f"Failed to parse plugin info: {e}") from e


_SEMVER = re.compile(
    r"^v?(?P<major>\d+)\.(?P<minor>\d+)\.(?P<patch>\d+)"
    r"(?:-(?P<pre>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*)?$"
)


def _precedence(version: str) -> tuple[Any, ...]:
    match = _SEMVER.match(version.strip())
    if match is None:
        raise ValueError(f"Not a semantic version: {version!r}")
    core = (int(match["major"]), int(match["minor"]), int(match["patch"]))
    pre = match["pre"]
    if pre is None:
        # A release ranks above all of its pre-releases.
        return (*core, 1, ())
    identifiers = tuple(
        (0, int(part), "") if part.isdigit() else (1, 0, part) for part in pre.split(".")
    )
    return (*core, 0, identifiers)


def version_at_least(version: str, minimum: str) -> bool:
    """Compare by semantic-version precedence, pre-release tags included.

    Raises:
        ValueError: either version is not a semantic version.
    """

    return _precedence(version) >= _precedence(minimum)
