from fleetgraph.groups import (
    NodeGroup,
    ancestors,
    apply_runtime_active,
    blocked_node_ids,
    build_group_port_index,
    deepest_group_containing_node,
    derive_runtime_active,
    effective_disabled_group_ids,
    group_depths,
    normalize_group_list,
)
from fleetgraph.schema import NodeInstance


def test_duplicate_ids_merge_node_ids_in_first_seen_order() -> None:
    groups = normalize_group_list(
        [
            {"id": "g1", "nodeIds": ["n1", "n2", "n2"]},
            {"id": "g2", "nodeIds": ["n3", "n4"]},
            {"id": "g1", "nodeIds": ["n2", "n5"]},
        ]
    )

    assert [g.id for g in groups] == ["g1", "g2"]
    assert groups[0].node_ids == ["n1", "n2", "n5"]


def test_non_string_fields_are_coerced() -> None:
    groups = normalize_group_list(
        [
            {"id": 123, "parentId": 0, "nodeIds": ["a", 0, "", "b"]},
            {"id": "", "nodeIds": ["x"]},
            {"id": "   "},
        ]
    )

    assert len(groups) == 1
    assert groups[0].id == "123"
    assert groups[0].parent_id is None
    assert groups[0].node_ids == ["a", "0", "b"]


def test_first_occurrence_fixes_scalars() -> None:
    groups = normalize_group_list(
        [
            {"id": "g", "name": "First", "disabled": False},
            {"id": "g", "name": "Second", "disabled": True, "runtimeActive": False},
            {"id": "g", "runtimeActive": True},
        ]
    )

    assert groups[0].name == "First"
    assert groups[0].disabled is False
    assert groups[0].runtime_active is False


def test_normalize_never_raises_on_garbage() -> None:
    assert normalize_group_list(None) == []
    assert normalize_group_list("g1") == []
    assert normalize_group_list({"id": "g1"}) == []
    groups = normalize_group_list([None, 5, {"id": "ok", "nodeIds": "n1"}])
    assert [g.id for g in groups] == ["ok"]
    assert groups[0].node_ids == []


def test_normalize_accepts_group_models() -> None:
    groups = normalize_group_list([NodeGroup(id="g", node_ids=["a"], parent_id="root")])

    assert groups[0].parent_id == "root"
    assert groups[0].node_ids == ["a"]


def _tree() -> list[NodeGroup]:
    return normalize_group_list(
        [
            {"id": "root", "nodeIds": ["a", "b", "c"]},
            {"id": "mid", "parentId": "root", "nodeIds": ["b", "c"]},
            {"id": "leaf", "parentId": "mid", "nodeIds": ["c"]},
            {"id": "loop-a", "parentId": "loop-b"},
            {"id": "loop-b", "parentId": "loop-a"},
        ]
    )


def test_hierarchy_helpers() -> None:
    groups = _tree()

    assert ancestors("leaf", groups) == ["mid", "root"]
    assert group_depths(groups)["leaf"] == 2
    assert deepest_group_containing_node("c", groups) == "leaf"
    assert deepest_group_containing_node("a", groups) == "root"
    assert deepest_group_containing_node("zzz", groups) is None


def test_parent_cycles_do_not_hang() -> None:
    groups = _tree()

    assert len(ancestors("loop-a", groups)) == 1
    assert set(group_depths(groups)) >= {"loop-a", "loop-b"}


def test_disabled_parent_disables_descendants() -> None:
    groups = _tree()
    groups[1].disabled = True

    assert effective_disabled_group_ids(groups) == {"mid", "leaf"}


def _gate(node_id: str, group_id: str, active: bool | None) -> NodeInstance:
    outputs = {} if active is None else {"active": active}
    return NodeInstance(
        id=node_id, type="group-gate", config={"groupId": group_id}, output_values=outputs
    )


def test_runtime_active_derived_from_gate_outputs() -> None:
    groups = normalize_group_list([{"id": "g1", "nodeIds": ["x"]}, {"id": "g2"}])
    nodes = [_gate("gate1", "g1", False), NodeInstance(id="x", type="number")]

    assert derive_runtime_active(groups, nodes) == {"g1": False}
    updated = apply_runtime_active(groups, nodes)
    assert updated[0].runtime_active is False
    assert updated[1].runtime_active is None
    assert groups[0].runtime_active is None


def test_blocked_nodes_follow_closed_gates_and_disabled_groups() -> None:
    groups = normalize_group_list(
        [
            {"id": "outer", "nodeIds": ["gate", "a", "b"]},
            {"id": "inner", "parentId": "outer", "nodeIds": ["b"]},
            {"id": "off", "disabled": True, "nodeIds": ["c"]},
        ]
    )
    nodes = [
        _gate("gate", "outer", False),
        NodeInstance(id="a", type="number"),
        NodeInstance(id="b", type="number"),
        NodeInstance(id="c", type="number"),
    ]

    assert blocked_node_ids(groups, nodes) == {"a", "b", "c"}

    nodes[0].output_values["active"] = True
    assert blocked_node_ids(groups, nodes) == {"c"}


def test_group_port_index_reads_config_group_id() -> None:
    nodes = [
        _gate("gate", "g1", None),
        NodeInstance(id="p1", type="group-proxy", config={"groupId": "g1"}),
        NodeInstance(id="p2", type="group-proxy", config={}),
    ]

    index = build_group_port_index(nodes)

    assert index["g1"].gate_id == "gate"
    assert index["g1"].proxy_ids == ["p1"]
    assert "" not in index


def test_whitespace_parent_id_is_kept() -> None:
    groups = normalize_group_list([{"id": "g", "parentId": "  "}, {"id": "h", "parentId": ""}])

    assert groups[0].parent_id == "  "
    assert groups[1].parent_id is None
    assert ancestors("g", groups) == []
