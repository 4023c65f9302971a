"""Graph state schema: port types, ports, node instances, and connections."""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


class PortType(str, Enum):
    """Closed set of value kinds a port may carry."""

    NUMBER = "number"
    BOOLEAN = "boolean"
    STRING = "string"
    ASSET = "asset"
    COLOR = "color"
    AUDIO = "audio"
    IMAGE = "image"
    VIDEO = "video"
    SCENE = "scene"
    EFFECT = "effect"
    CLIENT = "client"
    COMMAND = "command"
    FUZZY = "fuzzy"
    ARRAY = "array"
    ANY = "any"


class PortKind(str, Enum):
    """Port execution semantics."""

    DATA = "data"
    SINK = "sink"


class ConfigFieldType(str, Enum):
    """Static configuration field kinds."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    SELECT = "select"
    TIME_RANGE = "time-range"
    PARAM_PATH = "param-path"
    MIDI_SOURCE = "midi-source"
    CLIENT_PICKER = "client-picker"
    ASSET_PICKER = "asset-picker"
    FILE = "file"


def is_compatible(source: PortType, target: PortType) -> bool:
    """Return True when a value of ``source`` type may flow into ``target``."""
    if source == PortType.ANY or target == PortType.ANY:
        return True
    return source == target


def _is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    return isinstance(value, (int, float)) and math.isfinite(value)


def _is_command(value: Any) -> bool:
    if isinstance(value, Mapping):
        return True
    if isinstance(value, (list, tuple)):
        return all(isinstance(item, Mapping) for item in value)
    return False


_VALUE_CHECKS = {
    PortType.NUMBER: _is_number,
    PortType.BOOLEAN: lambda value: isinstance(value, bool),
    PortType.STRING: lambda value: isinstance(value, str),
    PortType.ASSET: lambda value: isinstance(value, str),
    PortType.COLOR: lambda value: isinstance(value, str),
    PortType.ARRAY: lambda value: isinstance(value, (list, tuple)),
    PortType.COMMAND: _is_command,
    PortType.CLIENT: lambda value: isinstance(value, (str, Mapping)),
}


def value_matches(port_type: PortType, value: Any) -> bool:
    """Check a payload against its port type; opaque types accept anything."""
    check = _VALUE_CHECKS.get(PortType(port_type))
    if check is None:
        return True
    return bool(check(value))


@dataclass(frozen=True)
class TypedValue:
    """A port payload tagged with its port type."""

    type: PortType
    payload: Any

    @classmethod
    def of(cls, port_type: PortType | str, payload: Any) -> "TypedValue":
        tag = PortType(port_type)
        if not value_matches(tag, payload):
            raise ValueError(f"payload {payload!r} is not a valid '{tag.value}' value")
        return cls(tag, payload)


def coerce_id(value: Any) -> str:
    """Render an externally sourced id as a string.

    ``None`` becomes ``""``; booleans and integral floats render the way a JSON
    producer would (``true``, ``1``) rather than Python's ``True``/``1.0``.
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class Port(_CamelModel):
    """Typed port declared by a node definition."""

    id: str
    label: str = ""
    type: PortType = PortType.ANY
    default_value: Any = None
    kind: PortKind = PortKind.DATA
    min: float | None = None
    max: float | None = None
    step: float | None = None


class SelectOption(_CamelModel):
    value: str
    label: str = ""


class ConfigField(_CamelModel):
    """Static configuration field of a node definition."""

    key: str
    label: str = ""
    type: ConfigFieldType = ConfigFieldType.STRING
    default_value: Any = None
    options: list[SelectOption] | None = None
    min: float | None = None
    max: float | None = None
    step: float | None = None


class Position(_CamelModel):
    x: float = 0.0
    y: float = 0.0


class NodeInstance(_CamelModel):
    """Node placed in a graph, with its config and cached I/O values."""

    id: str
    type: str
    position: Position = Field(default_factory=Position)
    config: dict[str, Any] = Field(default_factory=dict)
    input_values: dict[str, Any] = Field(default_factory=dict)
    output_values: dict[str, Any] = Field(default_factory=dict)

    @field_validator("id", "type", mode="before")
    @classmethod
    def _coerce_ids(cls, value: Any) -> str:
        return coerce_id(value)

    @field_validator("config", "input_values", "output_values", "position", mode="before")
    @classmethod
    def _mapping_or_empty(cls, value: Any) -> Any:
        return value if isinstance(value, (Mapping, BaseModel)) else {}


class Connection(_CamelModel):
    """Directed edge from an output port to an input port."""

    id: str
    source_node_id: str
    source_port_id: str
    target_node_id: str
    target_port_id: str

    @field_validator(
        "id",
        "source_node_id",
        "source_port_id",
        "target_node_id",
        "target_port_id",
        mode="before",
    )
    @classmethod
    def _coerce_ids(cls, value: Any) -> str:
        return coerce_id(value)


class GraphState(_CamelModel):
    """Nodes and connections of one editable graph."""

    nodes: list[NodeInstance] = Field(default_factory=list)
    connections: list[Connection] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _drop_malformed(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data
        nodes = data.get("nodes")
        connections = data.get("connections")
        return {
            "nodes": [n for n in nodes if _is_record(n)] if isinstance(nodes, list) else [],
            "connections": (
                [c for c in connections if _is_record(c)]
                if isinstance(connections, list)
                else []
            ),
        }

    def node_by_id(self) -> dict[str, NodeInstance]:
        return {node.id: node for node in self.nodes}

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def _is_record(value: Any) -> bool:
    return isinstance(value, (Mapping, BaseModel))


@dataclass
class GraphParseResult:
    state: GraphState
    issues: list[str]


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return str(exc)
    first = errors[0]
    where = ".".join(str(part) for part in first.get("loc", ()))
    return f"{where}: {first.get('msg', 'invalid')}" if where else first.get("msg", "invalid")


def parse_graph_state(data: Any) -> GraphParseResult:
    """Validate a raw (JSON-like) graph record by record.

    Malformed nodes or connections are dropped and described in ``issues``;
    nothing is raised.
    """
    if isinstance(data, GraphState):
        return GraphParseResult(data.model_copy(deep=True), [])
    issues: list[str] = []
    if not isinstance(data, Mapping):
        return GraphParseResult(GraphState(), ["graph payload must be a mapping"])

    nodes: list[NodeInstance] = []
    raw_nodes = data.get("nodes")
    if raw_nodes is not None and not isinstance(raw_nodes, list):
        issues.append("'nodes' must be a list")
        raw_nodes = []
    for index, raw in enumerate(raw_nodes or []):
        try:
            node = NodeInstance.model_validate(raw)
        except ValidationError as exc:
            issues.append(f"node[{index}] dropped: {_first_error(exc)}")
            continue
        if not node.id.strip():
            issues.append(f"node[{index}] dropped: empty id")
            continue
        nodes.append(node)

    connections: list[Connection] = []
    raw_connections = data.get("connections")
    if raw_connections is not None and not isinstance(raw_connections, list):
        issues.append("'connections' must be a list")
        raw_connections = []
    for index, raw in enumerate(raw_connections or []):
        try:
            connections.append(Connection.model_validate(raw))
        except ValidationError as exc:
            issues.append(f"connection[{index}] dropped: {_first_error(exc)}")

    return GraphParseResult(GraphState(nodes=nodes, connections=connections), issues)


def load_graph_state(data: Any) -> GraphState:
    """Tolerant ingestion of a raw graph; see :func:`parse_graph_state`."""
    return parse_graph_state(data).state
