"""Node definition registry and discovery utilities."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from importlib import metadata

from fleetgraph.definitions import NodeDefinition

logger = logging.getLogger(__name__)


class NodeRegistry:
    """Maps node type ids to definitions, in registration order."""

    def __init__(self) -> None:
        self._definitions: dict[str, NodeDefinition] = {}

    def register(self, definition: NodeDefinition) -> None:
        # Re-registering a type replaces it in place and keeps its first position.
        self._definitions[definition.type] = definition

    def discover_entry_points(self, group: str = "fleetgraph.nodes") -> None:
        """Call every ``register(registry)`` hook published by installed packages."""
        for entry_point in metadata.entry_points(group=group):
            hook = entry_point.load()
            if not callable(hook):
                logger.warning("Ignoring non-callable node entry point %s", entry_point.name)
                continue
            hook(self)

    def get(self, node_type: str) -> NodeDefinition | None:
        return self._definitions.get(node_type)

    def require(self, node_type: str) -> NodeDefinition:
        if node_type not in self._definitions:
            available = ", ".join(sorted(self._definitions))
            raise KeyError(f"Unknown node type '{node_type}'. Available: {available}")
        return self._definitions[node_type]

    def list(self) -> list[NodeDefinition]:
        return list(self._definitions.values())

    def list_by_category(self) -> dict[str, list[NodeDefinition]]:
        categories: dict[str, list[NodeDefinition]] = {}
        for definition in self._definitions.values():
            categories.setdefault(definition.category, []).append(definition)
        return categories

    def snapshot(self) -> dict[str, NodeDefinition]:
        """Copy of the type -> definition mapping, fixed for one tick."""
        return dict(self._definitions)

    def items(self) -> Iterable[tuple[str, NodeDefinition]]:
        return self._definitions.items()

    def __contains__(self, node_type: object) -> bool:
        return node_type in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)
