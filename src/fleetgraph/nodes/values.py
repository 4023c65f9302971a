"""Constant/value and display nodes."""

from __future__ import annotations

import math
from typing import Any

from fleetgraph.definitions import NodeDefinition, ProcessContext, config_field, port
from fleetgraph.nodes.utils import coerce_boolean, format_any_preview


def _show_anything(inputs: dict[str, Any], config: dict[str, Any], ctx: ProcessContext) -> dict[str, Any]:
    del config, ctx
    return {"value": format_any_preview(inputs.get("in"))}


def _number(inputs: dict[str, Any], config: dict[str, Any], ctx: ProcessContext) -> dict[str, Any]:
    del ctx
    value = inputs.get("value")
    if isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value):
        return {"value": value}
    fallback = config.get("value", 0)
    if isinstance(fallback, (int, float)) and not isinstance(fallback, bool) and math.isfinite(fallback):
        return {"value": fallback}
    return {"value": 0}


def _string(inputs: dict[str, Any], config: dict[str, Any], ctx: ProcessContext) -> dict[str, Any]:
    del ctx
    value = inputs.get("value")
    if isinstance(value, str):
        return {"value": value}
    fallback = config.get("value")
    return {"value": fallback if isinstance(fallback, str) else ""}


def _bool(inputs: dict[str, Any], config: dict[str, Any], ctx: ProcessContext) -> dict[str, Any]:
    del ctx
    if inputs.get("value") is not None:
        return {"value": coerce_boolean(inputs["value"])}
    return {"value": coerce_boolean(config.get("value"))}


def create_show_anything_node() -> NodeDefinition:
    return NodeDefinition(
        type="show-anything",
        label="Show Anything",
        category="Other",
        inputs=[port("in", "In", "any")],
        outputs=[port("value", "Value", "string")],
        compute=_show_anything,
    )


def create_note_node() -> NodeDefinition:
    return NodeDefinition(
        type="note",
        label="Note",
        category="Other",
        config_schema=[config_field("text", "Text", "string", default="")],
    )


# Value boxes: editable constants that also pass through a connected input.
def create_number_node() -> NodeDefinition:
    return NodeDefinition(
        type="number",
        label="Number",
        category="Values",
        inputs=[port("value", "Value", "number")],
        outputs=[port("value", "Value", "number")],
        config_schema=[config_field("value", "Value", "number", default=0)],
        compute=_number,
    )


def create_string_node() -> NodeDefinition:
    return NodeDefinition(
        type="string",
        label="String",
        category="Values",
        inputs=[port("value", "Value", "string")],
        outputs=[port("value", "Value", "string")],
        config_schema=[config_field("value", "Value", "string", default="")],
        compute=_string,
    )


def create_bool_node() -> NodeDefinition:
    return NodeDefinition(
        type="bool",
        label="Bool",
        category="Values",
        inputs=[port("value", "Value", "boolean")],
        outputs=[port("value", "Value", "boolean")],
        config_schema=[config_field("value", "Value", "boolean", default=False)],
        compute=_bool,
    )
