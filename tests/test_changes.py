from fleetgraph.changes import (
    AddConnection,
    AddNode,
    RemoveNode,
    UpdateNodeConfig,
    apply_graph_changes,
    parse_changes,
    validate_graph_state,
)
from fleetgraph.nodes import register_default_nodes
from fleetgraph.registry import NodeRegistry
from fleetgraph.schema import Connection, GraphState, NodeInstance


def _conn(conn_id: str, source: str, source_port: str, target: str, target_port: str) -> Connection:
    return Connection(
        id=conn_id,
        source_node_id=source,
        source_port_id=source_port,
        target_node_id=target,
        target_port_id=target_port,
    )


def _state() -> GraphState:
    return GraphState(
        nodes=[
            NodeInstance(id="n1", type="number", config={"value": 2}),
            NodeInstance(id="n2", type="math"),
        ],
        connections=[_conn("c1", "n1", "value", "n2", "a")],
    )


def test_apply_changes_is_pure() -> None:
    state = _state()

    updated = apply_graph_changes(
        state,
        [
            AddNode(node=NodeInstance(id="n3", type="bool")),
            UpdateNodeConfig(node_id="n1", config={"value": 5}),
        ],
    )

    assert [n.id for n in updated.nodes] == ["n1", "n2", "n3"]
    assert updated.nodes[0].config == {"value": 5}
    assert state.nodes[0].config == {"value": 2}
    assert len(state.nodes) == 2


def test_remove_node_drops_touching_connections() -> None:
    updated = apply_graph_changes(_state(), [RemoveNode(node_id="n1")])

    assert [n.id for n in updated.nodes] == ["n2"]
    assert updated.connections == []


def test_add_connection_replaces_same_id() -> None:
    updated = apply_graph_changes(
        _state(), [AddConnection(connection=_conn("c1", "n1", "value", "n2", "b"))]
    )

    assert len(updated.connections) == 1
    assert updated.connections[0].target_port_id == "b"


def test_parse_changes_reads_camel_case_records() -> None:
    changes = parse_changes(
        [
            {"type": "update-node-type", "nodeId": "n2", "nodeType": "logic-and"},
            {"type": "update-node-position", "nodeId": "n2", "position": {"x": 10, "y": 20}},
            {"type": "remove-connection", "connectionId": "c1"},
        ]
    )

    updated = apply_graph_changes(_state(), changes)

    assert updated.nodes[1].type == "logic-and"
    assert updated.nodes[1].position.x == 10
    assert updated.connections == []


def test_validate_reports_structure_without_registry() -> None:
    state = GraphState(
        nodes=[NodeInstance(id="a", type="x"), NodeInstance(id="a", type="y")],
        connections=[_conn("c1", "a", "out", "ghost", "in"), _conn("c1", "a", "out", "a", "in")],
    )

    result = validate_graph_state(state)

    assert not result.ok
    assert "duplicate node id: a" in result.errors
    assert "duplicate connection id: c1" in result.errors
    assert "missing target node: ghost" in result.errors


def test_validate_with_registry_checks_ports_and_types() -> None:
    registry = register_default_nodes(NodeRegistry())
    state = GraphState(
        nodes=[
            NodeInstance(id="num", type="number"),
            NodeInstance(id="str", type="string"),
            NodeInstance(id="not", type="logic-not"),
            NodeInstance(id="what", type="mystery"),
        ],
        connections=[
            _conn("c1", "num", "value", "str", "value"),
            _conn("c2", "num", "nope", "not", "in"),
            _conn("c3", "str", "value", "not", "missing"),
        ],
    )

    errors = validate_graph_state(state, registry).errors

    assert any("unknown node type 'mystery'" in e for e in errors)
    assert any("incompatible types" in e and "c1" in e for e in errors)
    assert any("unknown output port 'nope'" in e for e in errors)
    assert any("unknown input port 'missing'" in e for e in errors)


def test_validate_rejects_second_connection_into_data_input() -> None:
    registry = register_default_nodes(NodeRegistry())
    state = GraphState(
        nodes=[
            NodeInstance(id="a", type="bool"),
            NodeInstance(id="b", type="bool"),
            NodeInstance(id="not", type="logic-not"),
        ],
        connections=[_conn("c1", "a", "value", "not", "in"), _conn("c2", "b", "value", "not", "in")],
    )

    result = validate_graph_state(state, registry)

    assert result.errors == ["input already connected: not:in"]


def test_gate_active_output_may_be_consumed() -> None:
    registry = register_default_nodes(NodeRegistry())
    state = GraphState(
        nodes=[NodeInstance(id="gate", type="group-gate"), NodeInstance(id="not", type="logic-not")],
        connections=[_conn("c1", "gate", "active", "not", "in")],
    )

    assert validate_graph_state(state, registry).ok
