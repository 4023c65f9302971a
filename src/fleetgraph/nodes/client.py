"""Command nodes: aggregation and the outward command sink."""

from __future__ import annotations

from typing import Any, Callable

from fleetgraph.definitions import NodeDefinition, ProcessContext, config_field, port

CMD_AGGREGATOR_INPUTS = 8

CommandDispatch = Callable[[dict[str, Any]], None]


def _flatten_commands(value: Any, out: list[Any]) -> None:
    if value is None:
        return
    if isinstance(value, (list, tuple)):
        for item in value:
            _flatten_commands(item, out)
        return
    out.append(value)


def _cmd_aggregator(inputs: dict[str, Any], config: dict[str, Any], ctx: ProcessContext) -> dict[str, Any]:
    del config, ctx
    commands: list[Any] = []
    for index in range(1, CMD_AGGREGATOR_INPUTS + 1):
        _flatten_commands(inputs.get(f"in{index}"), commands)
    return {"cmd": commands or None}


def target_from_config(config: dict[str, Any]) -> dict[str, Any]:
    """Build the ``{mode: all|clientIds|group, ...}`` selector for a delivery."""
    mode = config.get("targetMode") or "all"
    if mode == "clientIds":
        raw = config.get("clientIds") or ""
        ids = [part.strip() for part in str(raw).split(",") if part.strip()]
        return {"mode": "clientIds", "ids": ids}
    if mode == "group":
        return {"mode": "group", "groupId": str(config.get("group") or "")}
    return {"mode": "all"}


def create_cmd_aggregator_node() -> NodeDefinition:
    return NodeDefinition(
        type="cmd-aggregator",
        label="Cmd Aggregator",
        category="Objects",
        inputs=[port(f"in{n}", f"In {n}", "command") for n in range(1, CMD_AGGREGATOR_INPUTS + 1)],
        outputs=[port("cmd", "Cmd", "command")],
        compute=_cmd_aggregator,
    )


def create_command_out_node(dispatch: CommandDispatch) -> NodeDefinition:
    """Terminal sink handing fired commands to the outward dispatch layer."""

    def on_sink(inputs: dict[str, Any], config: dict[str, Any], ctx: ProcessContext) -> None:
        commands: list[Any] = []
        _flatten_commands(inputs.get("cmd"), commands)
        if not commands:
            return
        dispatch(
            {
                "nodeId": ctx.node_id,
                "time": ctx.time,
                "target": target_from_config(config),
                "commands": commands,
            }
        )

    return NodeDefinition(
        type="command-out",
        label="Command Out",
        category="Player",
        inputs=[port("cmd", "Cmd", "command", kind="sink")],
        outputs=[],
        config_schema=[
            config_field(
                "targetMode",
                "Target",
                "select",
                default="all",
                options=[("all", "All clients"), ("clientIds", "Client ids"), ("group", "Group")],
            ),
            config_field("clientIds", "Client ids", "client-picker", default=""),
            config_field("group", "Group", "string", default=""),
        ],
        on_sink=on_sink,
    )
