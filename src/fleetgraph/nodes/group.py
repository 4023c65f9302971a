"""Internal nodes modelling group boundaries: the gate and the proxy ports."""

from __future__ import annotations

from typing import Any

from fleetgraph.definitions import NodeDefinition, ProcessContext, config_field, port
from fleetgraph.groups import GROUP_GATE_NODE_TYPE, GROUP_PROXY_NODE_TYPE
from fleetgraph.schema import PortType


def _gate(inputs: dict[str, Any], config: dict[str, Any], ctx: ProcessContext) -> dict[str, Any]:
    del config, ctx
    raw = inputs.get("active")
    # `active` has no declared output port; group tooling reads it from the output cache.
    return {"active": raw if isinstance(raw, bool) else True}


def _proxy(inputs: dict[str, Any], config: dict[str, Any], ctx: ProcessContext) -> dict[str, Any]:
    del config, ctx
    return {"out": inputs.get("in")}


def create_group_gate_node() -> NodeDefinition:
    return NodeDefinition(
        type=GROUP_GATE_NODE_TYPE,
        label="Group Gate",
        category="Internal",
        inputs=[port("active", "Active", "boolean", default=True)],
        outputs=[],
        config_schema=[config_field("groupId", "Group ID", "string", default="")],
        compute=_gate,
        undeclared_outputs=True,
    )


def create_group_proxy_node() -> NodeDefinition:
    return NodeDefinition(
        type=GROUP_PROXY_NODE_TYPE,
        label="Group Proxy",
        category="Internal",
        inputs=[port("in", "In", "any")],
        outputs=[port("out", "Out", "any")],
        config_schema=[
            config_field("groupId", "Group ID", "string", default=""),
            config_field(
                "direction",
                "Direction",
                "select",
                default="output",
                options=[("input", "Input (left edge)"), ("output", "Output (right edge)")],
            ),
            config_field(
                "portType",
                "Port Type",
                "select",
                default=PortType.ANY.value,
                options=[port_type.value for port_type in PortType],
            ),
            config_field("pinned", "Pinned", "boolean", default=False),
        ],
        compute=_proxy,
    )
