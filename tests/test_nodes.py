import math

from fleetgraph.definitions import ProcessContext
from fleetgraph.finish_pulse import FinishPulseBridge
from fleetgraph.nodes import register_default_nodes
from fleetgraph.nodes.client import target_from_config
from fleetgraph.nodes.utils import (
    clamp_int,
    clamp_number,
    coerce_boolean,
    coerce_boolean_or,
    coerce_number,
    format_any_preview,
)
from fleetgraph.registry import NodeRegistry


REGISTRY = register_default_nodes(NodeRegistry())


def _run(node_type: str, inputs: dict, config: dict | None = None, ctx: ProcessContext | None = None) -> dict:
    definition = REGISTRY.require(node_type)
    return definition.compute(inputs, config or {}, ctx or ProcessContext("n", 0.0, 0.0))


def test_math_operations_and_zero_division() -> None:
    assert _run("math", {"a": 7, "b": 2}, {"operation": "-"}) == {"result": 5}
    assert _run("math", {"a": 7, "b": 0}, {"operation": "/"}) == {"result": 0}
    assert _run("math", {"a": 7, "b": 0}, {"operation": "mod"}) == {"result": 0}
    assert _run("math", {"a": 2, "b": 3, "operation": "pow"}, {"operation": "+"}) == {"result": 8}
    assert _run("math", {"a": "4", "b": None}, {"operation": "max"}) == {"result": 4}


def test_math_overflow_yields_nan() -> None:
    result = _run("math", {"a": 10, "b": 1000}, {"operation": "pow"})

    assert math.isnan(result["result"])


def test_boolean_gates() -> None:
    assert _run("logic-and", {"a": True, "b": "yes"}) == {"out": True}
    assert _run("logic-or", {"a": 0, "b": 0}) == {"out": False}
    assert _run("logic-xor", {"a": True, "b": False}) == {"out": True}
    assert _run("logic-nand", {"a": True, "b": True}) == {"out": False}
    assert _run("logic-nor", {"a": False, "b": False}) == {"out": True}
    assert _run("logic-not", {"in": "false"}) == {"out": True}


def test_logic_if_routes_input() -> None:
    assert _run("logic-if", {"input": True, "condition": True}) == {"true": True, "false": False}
    assert _run("logic-if", {"input": True, "condition": False}) == {"true": False, "false": True}


def test_array_filter_removes_matches() -> None:
    assert _run("array-filter", {"a": [1, "2", 3], "b": [2]}) == {"difference": [1, 3]}
    assert _run("array-filter", {"a": "nope", "b": None}) == {"difference": []}


def test_value_nodes_prefer_connected_input() -> None:
    assert _run("number", {"value": 3}, {"value": 9}) == {"value": 3}
    assert _run("number", {"value": float("inf")}, {"value": 9}) == {"value": 9}
    assert _run("string", {"value": None}, {"value": "hi"}) == {"value": "hi"}
    assert _run("bool", {"value": None}, {"value": True}) == {"value": True}
    assert _run("bool", {"value": 0}, {"value": True}) == {"value": False}
    assert _run("note", {}, {"text": "hello"}) == {}


def test_show_anything_previews_values() -> None:
    assert _run("show-anything", {"in": None}) == {"value": "--"}
    assert _run("show-anything", {"in": {"a": [1, 2]}}) == {"value": '{"a":[1,2]}'}


def test_group_nodes() -> None:
    assert _run("group-gate", {"active": False}) == {"active": False}
    assert _run("group-gate", {"active": "no"}) == {"active": True}
    assert _run("group-proxy", {"in": 5}) == {"out": 5}
    assert REGISTRY.require("group-gate").undeclared_outputs


def test_media_finish_reset_drains_pending_pulse() -> None:
    bridge = FinishPulseBridge()
    ctx = ProcessContext("mf", 0.0, 0.0, bridge)
    bridge.report_finish("mf")

    assert _run("media-finish", {"reset": True}, ctx=ctx) == {"finished": False}
    assert _run("media-finish", {"reset": False}, ctx=ctx) == {"finished": False}
    assert _run("media-finish", {"reset": False}) == {"finished": False}


def test_cmd_aggregator_flattens_inputs() -> None:
    result = _run("cmd-aggregator", {"in1": {"a": 1}, "in2": [{"b": 2}, [{"c": 3}]], "in3": None})

    assert result == {"cmd": [{"a": 1}, {"b": 2}, {"c": 3}]}
    assert _run("cmd-aggregator", {}) == {"cmd": None}


def test_target_from_config() -> None:
    assert target_from_config({}) == {"mode": "all"}
    assert target_from_config({"targetMode": "clientIds", "clientIds": "a, b,,"}) == {
        "mode": "clientIds",
        "ids": ["a", "b"],
    }


def test_coercion_helpers() -> None:
    assert coerce_number("2.5", 0.0) == 2.5
    assert coerce_number("abc", 1.0) == 1.0
    assert coerce_boolean(0.5) is True
    assert coerce_boolean("N") is False
    assert coerce_boolean_or(None, True) is True
    assert clamp_number(5, 0, 1) == 1
    assert clamp_int("3.9", 0, 0, 10) == 3
    assert format_any_preview(1.23456) == "1.235"
    assert format_any_preview("x" * 400).endswith("…")
    assert len(format_any_preview("x" * 400)) == 160


def test_describe_uses_camel_case() -> None:
    described = REGISTRY.require("math").describe()

    assert described["configSchema"][0]["defaultValue"] == "+"
    assert described["inputs"][0]["type"] == "number"
    assert described["hasSink"] is False
