"""Template-specific properties declared by a project template.

A template lists the extra values it needs under
``metadata.properties.templatePrerequisites.properties.templateProperties.properties``
of its entry in the template listing. Each entry is either an object with
``required`` and ``description`` or a bare value, which counts as optional.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel

logger = logging.getLogger(__name__)

_METADATA_PATH = ("properties", "templatePrerequisites", "properties", "templateProperties")


class TemplatePropertyMetadata(BaseModel):
    required: bool = False
    description: str = ""


def _child(node: Any, key: str) -> Any:
    return node.get(key) if isinstance(node, Mapping) else None


def extract_template_properties_metadata(
    selected_template: str, template_options: Any
) -> dict[str, dict[str, Any]] | None:
    """Find the property declarations of ``selected_template`` in a template listing.

    Returns None when the template is not listed or declares no properties.
    """

    templates = _child(template_options, "templates")
    if not isinstance(templates, list):
        return None
    template = next(
        (t for t in templates if isinstance(t, Mapping) and t.get("path") == selected_template),
        None,
    )
    if template is None:
        logger.warning(
            "Selected template is not in the listing", extra={"template": selected_template}
        )
        return None

    node: Any = template.get("metadata")
    for key in _METADATA_PATH:
        node = _child(node, key)
    declared = _child(node, "properties")
    if not isinstance(declared, Mapping) or not declared:
        logger.debug("Template declares no properties", extra={"template": selected_template})
        return None

    metadata: dict[str, dict[str, Any]] = {}
    for name, declaration in declared.items():
        if isinstance(declaration, Mapping):
            description = declaration.get("description")
            entry = TemplatePropertyMetadata(
                required=declaration.get("required") is True,
                description=description if isinstance(description, str) else "",
            )
        else:
            entry = TemplatePropertyMetadata()
        metadata[str(name)] = entry.model_dump()

    logger.info(
        "Template properties found",
        extra={"template": selected_template, "properties": sorted(metadata)},
    )
    return metadata


def parse_metadata(raw: Any) -> dict[str, TemplatePropertyMetadata]:
    if not isinstance(raw, Mapping):
        return {}
    return {
        str(name): TemplatePropertyMetadata.model_validate(entry)
        for name, entry in raw.items()
        if isinstance(entry, Mapping)
    }


def extraction_schema(metadata: Mapping[str, TemplatePropertyMetadata]) -> dict[str, Any]:
    """JSON schema for the extracted template properties: one string per property."""

    return {
        "type": "object",
        "properties": {
            name: {"type": "string", "description": entry.description}
            for name, entry in metadata.items()
        },
    }
