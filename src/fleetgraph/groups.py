"""Node groups: normalization of external group lists and hierarchy helpers.

Groups reference node ids in a graph; they never own node lifetime. Stale
references to missing nodes are tolerated and simply match nothing.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from fleetgraph.schema import NodeInstance, coerce_id

GROUP_GATE_NODE_TYPE = "group-gate"
GROUP_PROXY_NODE_TYPE = "group-proxy"


class NodeGroup(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    parent_id: str | None = None
    name: str = ""
    node_ids: list[str] = Field(default_factory=list)
    disabled: bool = False
    minimized: bool = False
    runtime_active: bool | None = None

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


def _read(record: Any, name: str, alias: str | None = None) -> Any:
    if isinstance(record, Mapping):
        if name in record:
            return record[name]
        return record.get(alias) if alias else None
    return getattr(record, name, None)


def _coerce_parent_id(value: Any) -> str | None:
    if isinstance(value, str) and value:
        return value
    return None


def _coerce_node_ids(value: Any) -> list[str]:
    if not isinstance(value, (list, tuple)):
        return []
    seen: dict[str, None] = {}
    for raw in value:
        node_id = coerce_id(raw)
        if node_id.strip():
            seen.setdefault(node_id, None)
    return list(seen)


def normalize_group_list(groups: Iterable[Any] | None) -> list[NodeGroup]:
    """Coerce, de-duplicate, and merge an externally sourced group list.

    The first record seen for an id fixes its scalar fields; later records with
    the same id only extend ``node_ids`` and may fill a missing
    ``runtime_active``. Output order is first-seen order. Never raises.
    """
    if isinstance(groups, (str, bytes, Mapping)) or groups is None:
        return []
    try:
        records = list(groups)
    except TypeError:
        return []

    merged: dict[str, NodeGroup] = {}
    for record in records:
        if record is None:
            continue
        group_id = coerce_id(_read(record, "id"))
        if not group_id.strip():
            continue

        node_ids = _coerce_node_ids(_read(record, "node_ids", "nodeIds"))
        raw_active = _read(record, "runtime_active", "runtimeActive")
        runtime_active = raw_active if isinstance(raw_active, bool) else None

        existing = merged.get(group_id)
        if existing is None:
            merged[group_id] = NodeGroup(
                id=group_id,
                parent_id=_coerce_parent_id(_read(record, "parent_id", "parentId")),
                name=coerce_id(_read(record, "name")),
                node_ids=node_ids,
                disabled=bool(_read(record, "disabled")),
                minimized=bool(_read(record, "minimized")),
                runtime_active=runtime_active,
            )
            continue

        existing.node_ids = _coerce_node_ids([*existing.node_ids, *node_ids])
        if existing.runtime_active is None and runtime_active is not None:
            existing.runtime_active = runtime_active

    return list(merged.values())


def _parent_of(group: NodeGroup, by_id: Mapping[str, NodeGroup]) -> str | None:
    parent_id = group.parent_id
    if parent_id and parent_id in by_id and parent_id != group.id:
        return parent_id
    return None


def group_depths(groups: list[NodeGroup]) -> dict[str, int]:
    """Depth of each group in the parent forest (roots are 0).

    Parent cycles are cut where they are detected.
    """
    by_id = {group.id: group for group in groups}
    depths: dict[str, int] = {}

    def depth_of(group_id: str, visiting: set[str]) -> int:
        if group_id in depths:
            return depths[group_id]
        if group_id in visiting:
            return 0
        visiting.add(group_id)
        parent_id = _parent_of(by_id[group_id], by_id)
        depth = depth_of(parent_id, visiting) + 1 if parent_id else 0
        visiting.discard(group_id)
        depths[group_id] = depth
        return depth

    for group in groups:
        depth_of(group.id, set())
    return depths


def children_by_parent(groups: list[NodeGroup]) -> dict[str | None, list[str]]:
    by_id = {group.id: group for group in groups}
    children: dict[str | None, list[str]] = {}
    for group in groups:
        children.setdefault(_parent_of(group, by_id), []).append(group.id)
    return children


def ancestors(group_id: str, groups: list[NodeGroup]) -> list[str]:
    """Ancestor ids from nearest parent to root."""
    by_id = {group.id: group for group in groups}
    chain: list[str] = []
    current = by_id.get(group_id)
    while current is not None:
        parent_id = _parent_of(current, by_id)
        if parent_id is None or parent_id in chain or parent_id == group_id:
            break
        chain.append(parent_id)
        current = by_id.get(parent_id)
    return chain


def deepest_group_containing_node(node_id: str, groups: list[NodeGroup]) -> str | None:
    depths = group_depths(groups)
    best: tuple[str, int] | None = None
    for group in groups:
        if node_id not in group.node_ids:
            continue
        depth = depths.get(group.id, 0)
        if best is None or depth > best[1]:
            best = (group.id, depth)
    return best[0] if best else None


def _inherit(groups: list[NodeGroup], own: set[str]) -> set[str]:
    """Extend a set of group ids with every group whose ancestor is in it."""
    result = set(own)
    for group in groups:
        if group.id in result:
            continue
        if any(ancestor in own for ancestor in ancestors(group.id, groups)):
            result.add(group.id)
    return result


def effective_disabled_group_ids(groups: list[NodeGroup]) -> set[str]:
    """Groups that are disabled themselves or sit under a disabled ancestor."""
    return _inherit(groups, {group.id for group in groups if group.disabled})


@dataclass
class GroupPorts:
    gate_id: str | None = None
    proxy_ids: list[str] = field(default_factory=list)


def group_id_of(node: NodeInstance) -> str:
    return coerce_id(node.config.get("groupId"))


def build_group_port_index(nodes: Iterable[NodeInstance]) -> dict[str, GroupPorts]:
    """Index gate and proxy nodes by the group id in their config."""
    index: dict[str, GroupPorts] = {}
    for node in nodes:
        if node.type not in (GROUP_GATE_NODE_TYPE, GROUP_PROXY_NODE_TYPE):
            continue
        group_id = group_id_of(node)
        if not group_id:
            continue
        entry = index.setdefault(group_id, GroupPorts())
        if node.type == GROUP_GATE_NODE_TYPE and entry.gate_id is None:
            entry.gate_id = node.id
        elif node.type == GROUP_PROXY_NODE_TYPE:
            entry.proxy_ids.append(node.id)
    return index


def _gate_nodes_by_group(
    groups: list[NodeGroup], nodes: Iterable[NodeInstance]
) -> dict[str, list[NodeInstance]]:
    gates = [node for node in nodes if node.type == GROUP_GATE_NODE_TYPE]
    result: dict[str, list[NodeInstance]] = {}
    for group in groups:
        members = set(group.node_ids)
        contained = [
            gate for gate in gates if gate.id in members or group_id_of(gate) == group.id
        ]
        if contained:
            result[group.id] = contained
    return result


def derive_runtime_active(
    groups: list[NodeGroup], nodes: Iterable[NodeInstance]
) -> dict[str, bool]:
    """Gate-derived activity per group: True when any contained gate reports active.

    Groups without gate nodes are absent from the result.
    """
    return {
        group_id: any(gate.output_values.get("active") is True for gate in gates)
        for group_id, gates in _gate_nodes_by_group(groups, nodes).items()
    }


def apply_runtime_active(
    groups: list[NodeGroup], nodes: Iterable[NodeInstance]
) -> list[NodeGroup]:
    derived = derive_runtime_active(groups, nodes)
    return [
        group.model_copy(update={"runtime_active": derived[group.id]})
        if group.id in derived
        else group.model_copy()
        for group in groups
    ]


def blocked_node_ids(groups: list[NodeGroup], nodes: Iterable[NodeInstance]) -> set[str]:
    """Node ids that should not run: members of disabled or gate-closed groups.

    Both conditions are inherited by nested groups. Gate nodes stay runnable so a
    closed gate can reopen.
    """
    node_list = list(nodes)
    closed = {
        group_id
        for group_id, gates in _gate_nodes_by_group(groups, node_list).items()
        if all(gate.output_values.get("active") is False for gate in gates)
    }
    inactive = _inherit(groups, {g.id for g in groups if g.disabled} | closed)
    gate_ids = {node.id for node in node_list if node.type == GROUP_GATE_NODE_TYPE}
    blocked: set[str] = set()
    for group in groups:
        if group.id in inactive:
            blocked.update(node_id for node_id in group.node_ids if node_id not in gate_ids)
    return blocked
