from importlib import metadata

import pytest

from fleetgraph.definitions import NodeDefinition, port
from fleetgraph.nodes import register_default_nodes
from fleetgraph.registry import NodeRegistry


def _definition(node_type: str, category: str = "Test", label: str = "") -> NodeDefinition:
    return NodeDefinition(
        type=node_type,
        label=label or node_type,
        category=category,
        outputs=[port("out", "Out", "number")],
    )


def test_registry_keeps_registration_order_and_last_wins() -> None:
    registry = NodeRegistry()
    registry.register(_definition("a", label="first"))
    registry.register(_definition("b"))
    registry.register(_definition("a", label="second"))

    assert [d.type for d in registry.list()] == ["a", "b"]
    assert registry.get("a").label == "second"
    assert registry.get("missing") is None
    assert "b" in registry
    assert len(registry) == 2


def test_registry_groups_by_category() -> None:
    registry = NodeRegistry()
    registry.register(_definition("x", category="Logic"))
    registry.register(_definition("y", category="Values"))
    registry.register(_definition("z", category="Logic"))

    by_category = registry.list_by_category()

    assert list(by_category) == ["Logic", "Values"]
    assert [d.type for d in by_category["Logic"]] == ["x", "z"]


def test_require_lists_available_types() -> None:
    registry = NodeRegistry()
    registry.register(_definition("number"))

    with pytest.raises(KeyError, match="Available: number"):
        registry.require("nope")


def test_snapshot_is_isolated_from_later_registrations() -> None:
    registry = NodeRegistry()
    registry.register(_definition("a"))
    snapshot = registry.snapshot()
    registry.register(_definition("b"))

    assert list(snapshot) == ["a"]


def test_registry_discovers_builtin_nodes() -> None:
    registry = register_default_nodes(NodeRegistry())

    types = {d.type for d in registry.list()}

    assert {"number", "math", "logic-and", "group-gate", "group-proxy", "media-finish"} <= types
    assert "command-out" not in types


def test_discover_entry_points_calls_hooks(monkeypatch) -> None:
    class FakeEntryPoint:
        name = "pack"

        def load(self):
            return lambda registry: registry.register(_definition("from-pack"))

    monkeypatch.setattr(metadata, "entry_points", lambda group: [FakeEntryPoint()])
    registry = NodeRegistry()
    registry.discover_entry_points()

    assert registry.get("from-pack") is not None
