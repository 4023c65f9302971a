"""Logic, math, and boolean gate nodes."""

from __future__ import annotations

import math
import operator
from typing import Any, Callable

from fleetgraph.definitions import NodeDefinition, ProcessContext, config_field, port
from fleetgraph.nodes.utils import coerce_boolean, coerce_number

MATH_OPERATIONS: dict[str, Callable[[float, float], float]] = {
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
    "/": lambda a, b: a / b if b != 0 else 0,
    "min": min,
    "max": max,
    "mod": lambda a, b: math.fmod(a, b) if b != 0 else 0,
    "pow": lambda a, b: math.pow(a, b),
}


def _math(inputs: dict[str, Any], config: dict[str, Any], ctx: ProcessContext) -> dict[str, Any]:
    del ctx
    a = coerce_number(inputs.get("a"), 0.0)
    b = coerce_number(inputs.get("b"), 0.0)
    op = inputs.get("operation")
    if not (isinstance(op, str) and op.strip()):
        op = str(config.get("operation") or "+")
    fn = MATH_OPERATIONS.get(op.strip(), operator.add)
    try:
        result = fn(a, b)
    except (OverflowError, ValueError):
        result = math.nan
    return {"result": result}


def _array_filter(inputs: dict[str, Any], config: dict[str, Any], ctx: ProcessContext) -> dict[str, Any]:
    del config, ctx
    a = inputs.get("a") if isinstance(inputs.get("a"), list) else []
    b = inputs.get("b") if isinstance(inputs.get("b"), list) else []
    exclude = {str(item) for item in b}
    return {"difference": [item for item in a if str(item) not in exclude]}


def _if(inputs: dict[str, Any], config: dict[str, Any], ctx: ProcessContext) -> dict[str, Any]:
    del config, ctx
    value = coerce_boolean(inputs.get("input"))
    condition = coerce_boolean(inputs.get("condition"))
    return {
        "true": value if condition else False,
        "false": False if condition else value,
    }


def _not(inputs: dict[str, Any], config: dict[str, Any], ctx: ProcessContext) -> dict[str, Any]:
    del config, ctx
    return {"out": not coerce_boolean(inputs.get("in"))}


def _binary_gate(
    gate_type: str, label: str, fn: Callable[[bool, bool], bool]
) -> NodeDefinition:
    def compute(inputs: dict[str, Any], config: dict[str, Any], ctx: ProcessContext) -> dict[str, Any]:
        del config, ctx
        return {"out": fn(coerce_boolean(inputs.get("a")), coerce_boolean(inputs.get("b")))}

    return NodeDefinition(
        type=gate_type,
        label=label,
        category="Gate",
        inputs=[
            port("a", "A", "boolean", default=False),
            port("b", "B", "boolean", default=False),
        ],
        outputs=[port("out", "Out", "boolean")],
        compute=compute,
    )


def create_math_node() -> NodeDefinition:
    return NodeDefinition(
        type="math",
        label="Math",
        category="Logic",
        inputs=[
            port("a", "A", "number", default=0),
            port("b", "B", "number", default=0),
            port("operation", "Operation", "string"),
        ],
        outputs=[port("result", "Result", "number")],
        config_schema=[
            config_field(
                "operation",
                "Operation",
                "select",
                default="+",
                options=[
                    ("+", "Add (+)"),
                    ("-", "Subtract (-)"),
                    ("*", "Multiply (x)"),
                    ("/", "Divide (/)"),
                    ("min", "Min"),
                    ("max", "Max"),
                    ("mod", "Modulo (%)"),
                    ("pow", "Power (^)"),
                ],
            )
        ],
        compute=_math,
    )


def create_array_filter_node() -> NodeDefinition:
    return NodeDefinition(
        type="array-filter",
        label="Array Filter",
        category="Logic",
        inputs=[port("a", "A", "array"), port("b", "B", "array")],
        outputs=[port("difference", "Difference", "array")],
        compute=_array_filter,
    )


def create_logic_if_node() -> NodeDefinition:
    return NodeDefinition(
        type="logic-if",
        label="if",
        category="Logic",
        inputs=[
            port("input", "input", "boolean", default=False),
            port("condition", "condition", "boolean", default=False),
        ],
        outputs=[port("false", "false", "boolean"), port("true", "true", "boolean")],
        compute=_if,
    )


def create_logic_not_node() -> NodeDefinition:
    return NodeDefinition(
        type="logic-not",
        label="NOT",
        category="Gate",
        inputs=[port("in", "In", "boolean", default=False)],
        outputs=[port("out", "Out", "boolean")],
        compute=_not,
    )


def create_logic_and_node() -> NodeDefinition:
    return _binary_gate("logic-and", "AND", lambda a, b: a and b)


def create_logic_or_node() -> NodeDefinition:
    return _binary_gate("logic-or", "OR", lambda a, b: a or b)


def create_logic_xor_node() -> NodeDefinition:
    return _binary_gate("logic-xor", "XOR", operator.ne)


def create_logic_nand_node() -> NodeDefinition:
    return _binary_gate("logic-nand", "NAND", lambda a, b: not (a and b))


def create_logic_nor_node() -> NodeDefinition:
    return _binary_gate("logic-nor", "NOR", lambda a, b: not (a or b))
