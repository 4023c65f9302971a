"""Built-in node catalogue."""

from fleetgraph.nodes.client import (
    CommandDispatch,
    create_cmd_aggregator_node,
    create_command_out_node,
)
from fleetgraph.nodes.group import create_group_gate_node, create_group_proxy_node
from fleetgraph.nodes.logic import (
    create_array_filter_node,
    create_logic_and_node,
    create_logic_if_node,
    create_logic_nand_node,
    create_logic_nor_node,
    create_logic_not_node,
    create_logic_or_node,
    create_logic_xor_node,
    create_math_node,
)
from fleetgraph.nodes.media import create_media_finish_node
from fleetgraph.nodes.values import (
    create_bool_node,
    create_note_node,
    create_number_node,
    create_show_anything_node,
    create_string_node,
)
from fleetgraph.registry import NodeRegistry

DEFAULT_NODE_FACTORIES = (
    create_show_anything_node,
    create_note_node,
    create_number_node,
    create_string_node,
    create_bool_node,
    create_math_node,
    create_array_filter_node,
    create_logic_if_node,
    create_logic_not_node,
    create_logic_and_node,
    create_logic_or_node,
    create_logic_xor_node,
    create_logic_nand_node,
    create_logic_nor_node,
    create_cmd_aggregator_node,
    create_media_finish_node,
    create_group_gate_node,
    create_group_proxy_node,
)


def register_default_nodes(
    registry: NodeRegistry, *, dispatch: CommandDispatch | None = None
) -> NodeRegistry:
    """Install the built-in definitions; ``command-out`` only when a dispatcher is given."""
    for factory in DEFAULT_NODE_FACTORIES:
        registry.register(factory())
    if dispatch is not None:
        registry.register(create_command_out_node(dispatch))
    return registry


__all__ = [
    "DEFAULT_NODE_FACTORIES",
    "CommandDispatch",
    "create_array_filter_node",
    "create_bool_node",
    "create_cmd_aggregator_node",
    "create_command_out_node",
    "create_group_gate_node",
    "create_group_proxy_node",
    "create_logic_and_node",
    "create_logic_if_node",
    "create_logic_nand_node",
    "create_logic_nor_node",
    "create_logic_not_node",
    "create_logic_or_node",
    "create_logic_xor_node",
    "create_math_node",
    "create_media_finish_node",
    "create_note_node",
    "create_number_node",
    "create_show_anything_node",
    "create_string_node",
    "register_default_nodes",
]
