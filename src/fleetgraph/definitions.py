"""Node definitions: plain port/config data plus the functions that run them."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Optional

from fleetgraph.schema import ConfigField, Port, PortKind

if TYPE_CHECKING:
    from fleetgraph.finish_pulse import FinishPulseBridge


@dataclass
class ProcessContext:
    """Per-node view of the current tick."""

    node_id: str
    time: float
    delta_time: float
    finish_pulses: Optional["FinishPulseBridge"] = None

    def consume_finish_pulse(self) -> bool:
        if self.finish_pulses is None:
            return False
        return self.finish_pulses.consume_pulse(self.node_id)


Values = dict[str, Any]
ComputeFn = Callable[[Values, Values, ProcessContext], Values]
SinkFn = Callable[[Values, Values, ProcessContext], None]


def _no_outputs(inputs: Values, config: Values, context: ProcessContext) -> Values:
    del inputs, config, context
    return {}


@dataclass
class NodeDefinition:
    type: str
    label: str
    category: str
    inputs: list[Port] = field(default_factory=list)
    outputs: list[Port] = field(default_factory=list)
    config_schema: list[ConfigField] = field(default_factory=list)
    compute: ComputeFn = _no_outputs
    on_sink: SinkFn | None = None
    on_disable: SinkFn | None = None
    # Allows connections from output keys the node writes but does not declare.
    undeclared_outputs: bool = False

    def input_port(self, port_id: str) -> Port | None:
        return next((port for port in self.inputs if port.id == port_id), None)

    def output_port(self, port_id: str) -> Port | None:
        return next((port for port in self.outputs if port.id == port_id), None)

    def data_inputs(self) -> list[Port]:
        return [port for port in self.inputs if port.kind == PortKind.DATA]

    def sink_inputs(self) -> list[Port]:
        return [port for port in self.inputs if port.kind == PortKind.SINK]

    def describe(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "label": self.label,
            "category": self.category,
            "inputs": [port.model_dump(mode="json", by_alias=True) for port in self.inputs],
            "outputs": [port.model_dump(mode="json", by_alias=True) for port in self.outputs],
            "configSchema": [
                item.model_dump(mode="json", by_alias=True, exclude_none=True)
                for item in self.config_schema
            ],
            "hasSink": self.on_sink is not None,
        }


def port(
    port_id: str,
    label: str,
    port_type: str = "any",
    *,
    default: Any = None,
    kind: str = "data",
    **hints: Any,
) -> Port:
    """Shorthand used by the built-in catalogue."""
    return Port(id=port_id, label=label, type=port_type, default_value=default, kind=kind, **hints)


def config_field(
    key: str,
    label: str,
    field_type: str = "string",
    *,
    default: Any = None,
    options: list[str] | list[tuple[str, str]] | None = None,
    **hints: Any,
) -> ConfigField:
    select_options = None
    if options is not None:
        select_options = [
            {"value": item[0], "label": item[1]} if isinstance(item, tuple) else {"value": item, "label": item}
            for item in options
        ]
    return ConfigField(
        key=key,
        label=label,
        type=field_type,
        default_value=default,
        options=select_options,
        **hints,
    )
