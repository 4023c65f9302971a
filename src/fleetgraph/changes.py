"""Pure graph change records, their application, and graph integrity checks."""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

from fleetgraph.registry import NodeRegistry
from fleetgraph.schema import (
    Connection,
    GraphState,
    NodeInstance,
    Port,
    PortKind,
    PortType,
    Position,
    is_compatible,
)


class _Change(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AddNode(_Change):
    type: Literal["add-node"] = "add-node"
    node: NodeInstance


class RemoveNode(_Change):
    type: Literal["remove-node"] = "remove-node"
    node_id: str


class UpdateNodeType(_Change):
    type: Literal["update-node-type"] = "update-node-type"
    node_id: str
    node_type: str


class UpdateNodePosition(_Change):
    type: Literal["update-node-position"] = "update-node-position"
    node_id: str
    position: Position


class UpdateNodeConfig(_Change):
    type: Literal["update-node-config"] = "update-node-config"
    node_id: str
    config: dict[str, Any]


class AddConnection(_Change):
    type: Literal["add-connection"] = "add-connection"
    connection: Connection


class RemoveConnection(_Change):
    type: Literal["remove-connection"] = "remove-connection"
    connection_id: str


GraphChange = Annotated[
    Union[
        AddNode,
        RemoveNode,
        UpdateNodeType,
        UpdateNodePosition,
        UpdateNodeConfig,
        AddConnection,
        RemoveConnection,
    ],
    Field(discriminator="type"),
]

_CHANGE_LIST = TypeAdapter(list[GraphChange])


def parse_changes(raw: Any) -> list[GraphChange]:
    """Validate a JSON-like list of change records."""
    return _CHANGE_LIST.validate_python(raw)


def apply_graph_changes(state: GraphState, changes: list[GraphChange]) -> GraphState:
    """Return a new GraphState with ``changes`` applied in order."""
    nodes = [node.model_copy(deep=True) for node in state.nodes]
    connections = [connection.model_copy() for connection in state.connections]

    for change in changes:
        if isinstance(change, AddNode):
            nodes = [node for node in nodes if node.id != change.node.id]
            nodes.append(change.node.model_copy(deep=True))
        elif isinstance(change, RemoveNode):
            nodes = [node for node in nodes if node.id != change.node_id]
            connections = [
                c
                for c in connections
                if change.node_id not in (c.source_node_id, c.target_node_id)
            ]
        elif isinstance(change, UpdateNodeType):
            nodes = [
                node.model_copy(update={"type": change.node_type}) if node.id == change.node_id else node
                for node in nodes
            ]
        elif isinstance(change, UpdateNodePosition):
            nodes = [
                node.model_copy(update={"position": change.position}) if node.id == change.node_id else node
                for node in nodes
            ]
        elif isinstance(change, UpdateNodeConfig):
            nodes = [
                node.model_copy(update={"config": dict(change.config)}) if node.id == change.node_id else node
                for node in nodes
            ]
        elif isinstance(change, AddConnection):
            connections = [c for c in connections if c.id != change.connection.id]
            connections.append(change.connection.model_copy())
        elif isinstance(change, RemoveConnection):
            connections = [c for c in connections if c.id != change.connection_id]
        else:
            raise TypeError(f"unsupported graph change: {change!r}")

    return GraphState(nodes=nodes, connections=connections)


class GraphValidationResult(BaseModel):
    ok: bool
    errors: list[str] = Field(default_factory=list)


def validate_graph_state(
    state: GraphState, registry: NodeRegistry | None = None
) -> GraphValidationResult:
    """Check ids and connection references; with a registry, also ports and types."""
    errors: list[str] = []
    nodes: dict[str, NodeInstance] = {}
    for node in state.nodes:
        if node.id in nodes:
            errors.append(f"duplicate node id: {node.id}")
        nodes[node.id] = node
        if registry is not None and registry.get(node.type) is None:
            errors.append(f"unknown node type '{node.type}' on node '{node.id}'")

    connection_ids: set[str] = set()
    connected_inputs: set[tuple[str, str]] = set()
    for connection in state.connections:
        if connection.id in connection_ids:
            errors.append(f"duplicate connection id: {connection.id}")
        connection_ids.add(connection.id)

        source = nodes.get(connection.source_node_id)
        target = nodes.get(connection.target_node_id)
        if source is None:
            errors.append(f"missing source node: {connection.source_node_id}")
        if target is None:
            errors.append(f"missing target node: {connection.target_node_id}")
        if registry is None or source is None or target is None:
            continue

        source_def = registry.get(source.type)
        target_def = registry.get(target.type)
        if source_def is None or target_def is None:
            continue
        out_port = source_def.output_port(connection.source_port_id)
        in_port = target_def.input_port(connection.target_port_id)
        if out_port is None and source_def.undeclared_outputs:
            out_port = Port(id=connection.source_port_id, type=PortType.ANY)
        if out_port is None:
            errors.append(
                f"connection '{connection.id}' unknown output port "
                f"'{connection.source_port_id}' on node '{source.id}'"
            )
            continue
        if in_port is None:
            errors.append(
                f"connection '{connection.id}' unknown input port "
                f"'{connection.target_port_id}' on node '{target.id}'"
            )
            continue
        if out_port.kind == PortKind.SINK:
            errors.append(
                f"connection '{connection.id}' starts at sink port "
                f"{source.id}.{out_port.id}; sink ports feed nothing"
            )
        if not is_compatible(out_port.type, in_port.type):
            errors.append(
                f"connection '{connection.id}' incompatible types: "
                f"{source.id}.{out_port.id}({out_port.type.value}) -> "
                f"{target.id}.{in_port.id}({in_port.type.value})"
            )
        if in_port.kind == PortKind.DATA:
            key = (target.id, in_port.id)
            if key in connected_inputs:
                errors.append(f"input already connected: {target.id}:{in_port.id}")
            connected_inputs.add(key)

    return GraphValidationResult(ok=not errors, errors=errors)
