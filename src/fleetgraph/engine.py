"""Tick evaluation engine for node graphs.

One tick resolves an evaluation order over data-port connections, runs every
node's compute function in that order, then delivers sink inputs. Recoverable
problems (cycles, dangling connections, unknown node types, invalid config,
failing compute or sink handlers) become :class:`EngineReport` entries on the
returned :class:`TickResult`; they are never raised.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import math
import threading
import time
from collections import defaultdict, deque
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from fleetgraph.definitions import NodeDefinition, ProcessContext
from fleetgraph.errors import EngineReport, ErrorKind, RegistryError, StructuralError
from fleetgraph.finish_pulse import FinishPulseBridge
from fleetgraph.groups import (
    NodeGroup,
    apply_runtime_active,
    blocked_node_ids,
    derive_runtime_active,
    normalize_group_list,
)
from fleetgraph.node_config import resolve_config
from fleetgraph.registry import NodeRegistry
from fleetgraph.schema import (
    Connection,
    GraphState,
    NodeInstance,
    Port,
    PortKind,
    PortType,
    is_compatible,
    parse_graph_state,
)

logger = logging.getLogger(__name__)

DEFAULT_TICK_INTERVAL = 1 / 30
DEFAULT_MAX_SINK_VALUES_PER_TICK = 200

# Sink oscillation watchdog: last N signatures per sink port, flagged when at
# least OSCILLATION_MIN_RUN of them alternate between two values within the window.
OSCILLATION_HISTORY = 10
OSCILLATION_MIN_RUN = 6
OSCILLATION_WINDOW_SECONDS = 1.0

# Actions updated continuously from sliders; alternating values are expected.
CONTINUOUS_ACTIONS = frozenset({"visualScenes", "visualEffects", "screenColor", "modulateSoundUpdate"})

NodePredicate = Callable[[str], bool]


@dataclass
class TickResult:
    tick: int
    time: float
    delta_time: float
    order: list[str]
    outputs: dict[str, dict[str, Any]]
    reports: list[EngineReport]
    duration: float

    @property
    def ok(self) -> bool:
        return not self.reports

    def reports_of(self, kind: ErrorKind) -> list[EngineReport]:
        return [report for report in self.reports if report.kind == kind]


@dataclass
class _Override:
    value: Any
    updated_at: float
    ttl: float | None = None

    def expired(self, now: float) -> bool:
        return self.ttl is not None and now - self.updated_at > self.ttl


@dataclass
class _Plan:
    order: list[str]
    definitions: dict[str, NodeDefinition]
    data_inputs: dict[str, dict[str, Connection]]
    sink_inputs: dict[str, list[Connection]]
    frozen: set[str]
    reports: list[EngineReport] = field(default_factory=list)


def _structural(message: str, **kwargs: Any) -> EngineReport:
    return EngineReport(kind=ErrorKind.STRUCTURAL, message=message, **kwargs)


def _kahn(node_ids: list[str], edges: dict[str, list[str]], skip: set[str]) -> list[str]:
    """Topological order over ``node_ids``; ties resolve in list order."""
    indegree = {node_id: 0 for node_id in node_ids if node_id not in skip}
    for source, targets in edges.items():
        if source in skip:
            continue
        for target in targets:
            if target in indegree:
                indegree[target] += 1
    queue = deque(node_id for node_id, degree in indegree.items() if degree == 0)
    order: list[str] = []
    while queue:
        node_id = queue.popleft()
        order.append(node_id)
        for target in edges.get(node_id, ()):
            if target not in indegree:
                continue
            indegree[target] -= 1
            if indegree[target] == 0:
                queue.append(target)
    return order


def _cyclic_nodes(candidates: list[str], edges: dict[str, list[str]]) -> list[list[str]]:
    """Strongly connected components among ``candidates`` that form cycles."""
    allowed = set(candidates)
    index_of: dict[str, int] = {}
    lowlink: dict[str, int] = {}
    stack: list[str] = []
    on_stack: set[str] = set()
    components: list[list[str]] = []
    counter = 0

    for root in candidates:
        if root in index_of:
            continue
        # Iterative Tarjan: (node, iterator over successors).
        work = [(root, iter(edges.get(root, ())))]
        index_of[root] = lowlink[root] = counter
        counter += 1
        stack.append(root)
        on_stack.add(root)
        while work:
            node, successors = work[-1]
            advanced = False
            for succ in successors:
                if succ not in allowed:
                    continue
                if succ not in index_of:
                    index_of[succ] = lowlink[succ] = counter
                    counter += 1
                    stack.append(succ)
                    on_stack.add(succ)
                    work.append((succ, iter(edges.get(succ, ()))))
                    advanced = True
                    break
                if succ in on_stack:
                    lowlink[node] = min(lowlink[node], index_of[succ])
            if advanced:
                continue
            work.pop()
            if work:
                parent = work[-1][0]
                lowlink[parent] = min(lowlink[parent], lowlink[node])
            if lowlink[node] == index_of[node]:
                component: list[str] = []
                while True:
                    member = stack.pop()
                    on_stack.discard(member)
                    component.append(member)
                    if member == node:
                        break
                if len(component) > 1 or node in edges.get(node, ()):
                    order = {node_id: i for i, node_id in enumerate(candidates)}
                    components.append(sorted(component, key=order.__getitem__))
    return components


def _bypass_ports(definition: NodeDefinition) -> tuple[str, str] | None:
    """Input/output pair a disabled node may pass through unchanged."""

    def passable(port_in: Port, port_out: Port) -> bool:
        return port_in.type == port_out.type and port_in.type not in (
            PortType.COMMAND,
            PortType.CLIENT,
        )

    in_port = definition.input_port("in")
    out_port = definition.output_port("out")
    if in_port and out_port:
        return ("in", "out") if passable(in_port, out_port) else None
    if len(definition.inputs) == 1 and len(definition.outputs) == 1:
        only_in, only_out = definition.inputs[0], definition.outputs[0]
        if passable(only_in, only_out):
            return only_in.id, only_out.id
    return None


def _count_values(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, (list, tuple)):
        return len(value)
    return 1


def _fingerprint(value: Any) -> str:
    try:
        return json.dumps(value, sort_keys=True, allow_nan=True)
    except (TypeError, ValueError):
        return repr(value)


def _same(a: Any, b: Any) -> bool:
    return a is b or _fingerprint(a) == _fingerprint(b)


def _diff_commands(previous: list[Any], current: list[Any]) -> list[Any]:
    """Commands in ``current`` that differ from their counterpart in ``previous``.

    Commands are paired by action and occurrence (the second ``flashlight`` is
    compared with the previous second ``flashlight``). Commands without an
    action are always treated as changed.
    """

    def keys(commands: list[Any]) -> list[str | None]:
        counts: dict[str, int] = defaultdict(int)
        out: list[str | None] = []
        for command in commands:
            action = command.get("action") if isinstance(command, Mapping) else None
            if not isinstance(action, str) or not action:
                out.append(None)
                continue
            out.append(f"{action}#{counts[action]}")
            counts[action] += 1
        return out

    before = {
        key: _fingerprint(command)
        for key, command in zip(keys(previous), previous)
        if key is not None
    }
    return [
        command
        for key, command in zip(keys(current), current)
        if key is None or before.get(key) != _fingerprint(command)
    ]


def _command_signature(value: Any) -> str | None:
    """Coarse identity of a command (or the first few of a list) for oscillation checks."""

    def one(command: Any) -> str | None:
        if not isinstance(command, Mapping):
            return None
        action = command.get("action")
        if not isinstance(action, str) or not action or action in CONTINUOUS_ACTIONS:
            return None
        payload = command.get("payload")
        if not isinstance(payload, Mapping):
            payload = {}
        parts = [f"a={action}"]
        for key, label in (("mode", "mode"), ("waveform", "wave"), ("sceneId", "scene"), ("transition", "trans")):
            field_value = payload.get(key)
            if isinstance(field_value, str) and field_value:
                parts.append(f"{label}={field_value}")
        if action == "flashlight" and payload.get("mode") == "blink":
            for key, label in (("frequency", "f"), ("dutyCycle", "d")):
                number = payload.get(key)
                if isinstance(number, (int, float)) and not isinstance(number, bool) and math.isfinite(number):
                    parts.append(f"{label}={round(number, 2)}")
        return ",".join(parts)

    if isinstance(value, (list, tuple)):
        signatures = [sig for sig in (one(item) for item in value[:3]) if sig]
        if not signatures:
            return None
        extra = f"+{len(value) - 3}" if len(value) > 3 else ""
        return f"arr({'|'.join(signatures)}){extra}"
    return one(value)


def _alternating_run(history: list[tuple[float, str]], min_length: int, window: float) -> int:
    """Length of the longest A/B/A/B tail of ``history`` inside ``window`` seconds."""
    for length in range(len(history), min_length - 1, -1):
        tail = history[-length:]
        signatures = [signature for _, signature in tail]
        if len(set(signatures)) != 2:
            continue
        if any(signatures[i] == signatures[i - 1] for i in range(1, length)):
            continue
        if any(signatures[i] != signatures[i - 2] for i in range(2, length)):
            continue
        span = tail[-1][0] - tail[0][0]
        if 0 <= span <= window:
            return length
    return 0


class GraphEngine:
    """Evaluates a loaded graph one tick at a time.

    The registry is injected and snapshotted at the start of every tick, so
    registrations made while a tick runs only take effect on the next one.
    """

    def __init__(
        self,
        registry: NodeRegistry,
        *,
        finish_pulses: FinishPulseBridge | None = None,
        tick_interval: float = DEFAULT_TICK_INTERVAL,
        max_sink_values_per_tick: int = DEFAULT_MAX_SINK_VALUES_PER_TICK,
        clock: Callable[[], float] = time.monotonic,
        is_node_enabled: NodePredicate | None = None,
        is_compute_enabled: NodePredicate | None = None,
        is_sink_enabled: NodePredicate | None = None,
        detect_oscillation: bool = True,
    ) -> None:
        if not isinstance(registry, NodeRegistry):
            raise RegistryError("GraphEngine requires an initialized NodeRegistry")
        self.registry = registry
        self.finish_pulses = finish_pulses
        self.tick_interval = max(1e-3, float(tick_interval))
        self.max_sink_values_per_tick = max(1, int(max_sink_values_per_tick))
        self.clock = clock
        self.is_node_enabled = is_node_enabled
        self.is_compute_enabled = is_compute_enabled
        self.is_sink_enabled = is_sink_enabled
        self.detect_oscillation = detect_oscillation

        self.tick_count = 0
        self._lock = threading.RLock()
        self._nodes: dict[str, NodeInstance] = {}
        self._connections: list[Connection] = []
        self._groups: list[NodeGroup] = []
        self._load_reports: list[EngineReport] = []
        self._graph_version = 0
        self._plan: _Plan | None = None
        self._plan_key: tuple[Any, ...] | None = None
        self._last_time: float | None = None
        self._overrides: dict[str, dict[str, dict[str, _Override]]] = {}
        self._last_inputs: dict[str, dict[str, Any]] = {}
        self._enabled_state: dict[str, bool] = {}
        self._had_sink: dict[str, bool] = {}
        # Last (inputs, config) handed to on_sink; unchanged deliveries are skipped.
        self._delivered: dict[str, tuple[dict[str, Any], dict[str, Any]]] = {}
        self._sink_history: dict[str, dict[str, list[tuple[float, str]]]] = {}
        self._logged: set[tuple[Any, ...]] = set()

    # -- graph lifecycle -------------------------------------------------

    def load_graph(self, state: GraphState | Mapping[str, Any]) -> list[EngineReport]:
        """Replace the evaluated graph; returns ingestion reports.

        Node caches are copied, so later edits to ``state`` do not leak in.
        """
        parsed = parse_graph_state(state)
        reports = [
            EngineReport(kind=ErrorKind.INPUT_COERCION, message=issue)
            for issue in parsed.issues
        ]
        nodes: dict[str, NodeInstance] = {}
        for node in parsed.state.nodes:
            if node.id in nodes:
                reports.append(
                    _structural(f"duplicate node id '{node.id}'; keeping the first", node_id=node.id)
                )
                continue
            nodes[node.id] = node.model_copy(deep=True)

        with self._lock:
            # Per-node run state survives for nodes that keep their id and type.
            kept = {
                node_id
                for node_id, node in nodes.items()
                if node_id in self._nodes and self._nodes[node_id].type == node.type
            }
            self._nodes = nodes
            self._connections = list(parsed.state.connections)
            self._load_reports = reports
            self._graph_version += 1
            self._plan = None
            self._plan_key = None
            for state_map in (
                self._overrides,
                self._last_inputs,
                self._enabled_state,
                self._had_sink,
                self._delivered,
                self._sink_history,
            ):
                for node_id in [key for key in state_map if key not in kept]:
                    del state_map[node_id]
            self._logged.clear()
        for report in reports:
            logger.warning("Graph load: %s", report)
        return list(reports)

    def set_groups(self, groups: Iterable[Any] | None) -> list[NodeGroup]:
        """Use ``groups`` (normalized first) to gate node execution."""
        normalized = normalize_group_list(groups)
        with self._lock:
            self._groups = normalized
        return normalized

    def get_node(self, node_id: str) -> NodeInstance | None:
        with self._lock:
            return self._nodes.get(node_id)

    def last_computed_inputs(self, node_id: str) -> dict[str, Any] | None:
        with self._lock:
            inputs = self._last_inputs.get(node_id)
            return dict(inputs) if inputs is not None else None

    def export_graph(self) -> GraphState:
        with self._lock:
            return GraphState(
                nodes=[node.model_copy(deep=True) for node in self._nodes.values()],
                connections=list(self._connections),
            )

    @property
    def execution_order(self) -> list[str]:
        with self._lock:
            plan = self._resolve_plan(self.registry.snapshot())
            return list(plan.order)

    def runtime_active_by_group(self) -> dict[str, bool]:
        with self._lock:
            return derive_runtime_active(self._groups, self._nodes.values())

    def groups_with_runtime_active(self) -> list[NodeGroup]:
        with self._lock:
            return apply_runtime_active(self._groups, self._nodes.values())

    def reset(self) -> None:
        """Run disable hooks, then clear output caches and per-run state."""
        with self._lock:
            definitions = self.registry.snapshot()
            now = self.clock()
            for node in self._nodes.values():
                definition = definitions.get(node.type)
                if definition is not None:
                    self._run_disable_hook(node, definition, now, 0.0, [])
            for node in self._nodes.values():
                node.output_values = {}
            self._last_inputs.clear()
            self._enabled_state.clear()
            self._had_sink.clear()
            self._delivered.clear()
            self._sink_history.clear()
            self._last_time = None

    # -- overrides -------------------------------------------------------

    def apply_override(
        self,
        node_id: str,
        kind: str,
        key: str,
        value: Any,
        ttl: float | None = None,
    ) -> None:
        """Override an input or config value, optionally for ``ttl`` seconds.

        Overrides are never written into node caches, so expiry restores the
        underlying value.
        """
        if not node_id or not key:
            return
        bucket = "config" if kind == "config" else "input"
        lifetime = float(ttl) if ttl is not None and ttl > 0 else None
        with self._lock:
            entry = self._overrides.setdefault(node_id, {"input": {}, "config": {}})
            entry[bucket][key] = _Override(value, self.clock(), lifetime)

    def remove_override(self, node_id: str, kind: str, key: str) -> None:
        bucket = "config" if kind == "config" else "input"
        with self._lock:
            entry = self._overrides.get(node_id)
            if not entry:
                return
            entry[bucket].pop(key, None)
            if not entry["input"] and not entry["config"]:
                del self._overrides[node_id]

    def clear_overrides(self) -> None:
        with self._lock:
            self._overrides.clear()

    def _expire_overrides(self, now: float) -> None:
        for node_id in list(self._overrides):
            entry = self._overrides[node_id]
            for bucket in entry.values():
                for key in [k for k, ov in bucket.items() if ov.expired(now)]:
                    del bucket[key]
            if not entry["input"] and not entry["config"]:
                del self._overrides[node_id]

    def _effective_config(self, node: NodeInstance) -> dict[str, Any]:
        entry = self._overrides.get(node.id)
        if not entry or not entry["config"]:
            return node.config
        merged = dict(node.config)
        for key, override in entry["config"].items():
            merged[key] = override.value
        return merged

    # -- planning --------------------------------------------------------

    def _resolve_plan(self, definitions: dict[str, NodeDefinition]) -> _Plan:
        key = (
            self._graph_version,
            tuple((node_type, id(definition)) for node_type, definition in definitions.items()),
        )
        if self._plan is None or self._plan_key != key:
            self._plan = self._build_plan(definitions)
            self._plan_key = key
        return self._plan

    def _build_plan(self, definitions: dict[str, NodeDefinition]) -> _Plan:
        reports: list[EngineReport] = []
        node_ids = list(self._nodes)
        resolved: dict[str, NodeDefinition] = {}
        frozen: set[str] = set()
        for node_id, node in self._nodes.items():
            definition = definitions.get(node.type)
            if definition is None:
                frozen.add(node_id)
                reports.append(
                    _structural(f"unknown node type '{node.type}'", node_id=node_id)
                )
                continue
            resolved[node_id] = definition

        data_inputs: dict[str, dict[str, Connection]] = defaultdict(dict)
        sink_inputs: dict[str, list[Connection]] = defaultdict(list)
        edges: dict[str, list[str]] = defaultdict(list)

        for conn in self._connections:
            if conn.source_node_id not in self._nodes or conn.target_node_id not in self._nodes:
                missing = [
                    node_id
                    for node_id in (conn.source_node_id, conn.target_node_id)
                    if node_id not in self._nodes
                ]
                reports.append(
                    _structural(
                        f"connection '{conn.id}' references missing node(s): {', '.join(missing)}",
                        connection_id=conn.id,
                    )
                )
                continue
            source_def = resolved.get(conn.source_node_id)
            target_def = resolved.get(conn.target_node_id)
            if source_def is None or target_def is None:
                reports.append(
                    _structural(
                        f"connection '{conn.id}' touches a node of unknown type",
                        connection_id=conn.id,
                    )
                )
                continue

            target_port = target_def.input_port(conn.target_port_id)
            if target_port is None:
                reports.append(
                    _structural(
                        f"connection '{conn.id}' targets unknown input port "
                        f"'{conn.target_port_id}' on node '{conn.target_node_id}'",
                        node_id=conn.target_node_id,
                        connection_id=conn.id,
                    )
                )
                continue

            source_port = source_def.output_port(conn.source_port_id)
            if source_port is None:
                if not source_def.undeclared_outputs:
                    reports.append(
                        _structural(
                            f"connection '{conn.id}' reads unknown output port "
                            f"'{conn.source_port_id}' on node '{conn.source_node_id}'",
                            node_id=conn.source_node_id,
                            connection_id=conn.id,
                        )
                    )
                    continue
                source_port = Port(id=conn.source_port_id, type=PortType.ANY)
            if source_port.kind == PortKind.SINK:
                reports.append(
                    _structural(
                        f"connection '{conn.id}' starts at sink port "
                        f"'{source_port.id}'; sink ports feed nothing",
                        connection_id=conn.id,
                    )
                )
                continue
            if not is_compatible(source_port.type, target_port.type):
                reports.append(
                    _structural(
                        f"connection '{conn.id}' incompatible types: "
                        f"{source_port.type.value} -> {target_port.type.value}",
                        connection_id=conn.id,
                    )
                )
                continue

            if target_port.kind == PortKind.SINK:
                sink_inputs[conn.target_node_id].append(conn)
                continue

            ports = data_inputs[conn.target_node_id]
            if target_port.id in ports:
                reports.append(
                    _structural(
                        f"input already connected: {conn.target_node_id}:{target_port.id}; "
                        f"ignoring connection '{conn.id}'",
                        node_id=conn.target_node_id,
                        connection_id=conn.id,
                    )
                )
                continue
            ports[target_port.id] = conn
            if conn.target_node_id not in edges[conn.source_node_id]:
                edges[conn.source_node_id].append(conn.target_node_id)

        evaluable = [node_id for node_id in node_ids if node_id not in frozen]
        order = _kahn(evaluable, edges, frozen)
        if len(order) != len(evaluable):
            remaining = [node_id for node_id in evaluable if node_id not in set(order)]
            for component in _cyclic_nodes(remaining, edges):
                frozen.update(component)
                for node_id in component:
                    reports.append(
                        _structural(
                            "cycle detected in data connections: " + " -> ".join(component),
                            node_id=node_id,
                            details={"cycle": component},
                        )
                    )
            # Nodes downstream of a cycle still run against the held outputs.
            order = _kahn(evaluable, edges, frozen)

        return _Plan(
            order=order,
            definitions=resolved,
            data_inputs=dict(data_inputs),
            sink_inputs=dict(sink_inputs),
            frozen=frozen,
            reports=reports,
        )

    # -- evaluation ------------------------------------------------------

    def tick(self, time: float | None = None, delta_time: float | None = None) -> TickResult:
        """Run one evaluation pass. ``time`` defaults to the injected clock."""
        started = _perf()
        with self._lock:
            now = self.clock() if time is None else float(time)
            if delta_time is not None:
                delta = float(delta_time)
            elif self._last_time is not None:
                delta = now - self._last_time
            else:
                delta = self.tick_interval
            self._last_time = now

            definitions = self.registry.snapshot()
            self._expire_overrides(now)
            plan = self._resolve_plan(definitions)
            reports = [*self._load_reports, *plan.reports]
            blocked = blocked_node_ids(self._groups, self._nodes.values()) if self._groups else set()

            self._compute_pass(plan, now, delta, blocked, reports)
            self._sink_pass(plan, now, delta, blocked, reports)

            self.tick_count += 1
            outputs = {
                node_id: copy.deepcopy(node.output_values)
                for node_id, node in self._nodes.items()
            }
            for report in reports:
                self._log_once(report)
            return TickResult(
                tick=self.tick_count,
                time=now,
                delta_time=delta,
                order=list(plan.order),
                outputs=outputs,
                reports=reports,
                duration=_perf() - started,
            )

    def _node_enabled(self, node_id: str, blocked: set[str]) -> bool:
        if node_id in blocked:
            return False
        return self.is_node_enabled(node_id) if self.is_node_enabled else True

    def _compute_pass(
        self,
        plan: _Plan,
        now: float,
        delta: float,
        blocked: set[str],
        reports: list[EngineReport],
    ) -> None:
        # Nodes held on a cycle start from their definition's output defaults.
        for node_id in plan.frozen:
            node = self._nodes[node_id]
            definition = plan.definitions.get(node_id)
            if definition is not None and not node.output_values:
                node.output_values = {
                    out.id: copy.deepcopy(out.default_value) for out in definition.outputs
                }

        for node_id in plan.order:
            node = self._nodes[node_id]
            definition = plan.definitions[node_id]

            if not self._node_enabled(node_id, blocked):
                if self._enabled_state.get(node_id) is True:
                    self._run_disable_hook(node, definition, now, delta, reports)
                self._enabled_state[node_id] = False
                self._had_sink[node_id] = False
                self._delivered.pop(node_id, None)
                node.output_values = self._bypass_outputs(node, definition, plan) or {}
                continue
            self._enabled_state[node_id] = True

            if self.is_compute_enabled and not self.is_compute_enabled(node_id):
                node.output_values = {}
                continue

            inputs = self._gather_inputs(node, definition, plan, now)
            self._last_inputs[node_id] = inputs
            config = self._resolved_config(node, definition, reports)
            context = ProcessContext(node_id, now, delta, self.finish_pulses)
            try:
                outputs = definition.compute(inputs, config, context)
            except Exception as exc:
                reports.append(
                    EngineReport(
                        kind=ErrorKind.COMPUTE,
                        message=f"compute failed in {node.type}: {exc}",
                        node_id=node_id,
                        details={"error": type(exc).__name__},
                    )
                )
                continue
            if outputs is None:
                outputs = {}
            if not isinstance(outputs, Mapping):
                reports.append(
                    EngineReport(
                        kind=ErrorKind.COMPUTE,
                        message=f"compute in {node.type} returned {type(outputs).__name__}, expected a mapping",
                        node_id=node_id,
                    )
                )
                continue
            node.output_values = dict(outputs)

    def _gather_inputs(
        self, node: NodeInstance, definition: NodeDefinition, plan: _Plan, now: float
    ) -> dict[str, Any]:
        overrides = self._overrides.get(node.id, {}).get("input", {})
        connected = plan.data_inputs.get(node.id, {})
        inputs: dict[str, Any] = {}
        for port in definition.data_inputs():
            override = overrides.get(port.id)
            if override is not None and not override.expired(now):
                inputs[port.id] = override.value
                continue
            conn = connected.get(port.id)
            if conn is not None:
                source = self._nodes[conn.source_node_id]
                inputs[port.id] = source.output_values.get(conn.source_port_id)
                continue
            value = node.input_values.get(port.id)
            if value is None:
                value = copy.deepcopy(port.default_value)
            inputs[port.id] = value
            node.input_values[port.id] = value
        return inputs

    def _resolved_config(
        self, node: NodeInstance, definition: NodeDefinition, reports: list[EngineReport]
    ) -> dict[str, Any]:
        resolved = resolve_config(definition.config_schema, self._effective_config(node))
        for key, value in resolved.invalid.items():
            reports.append(
                EngineReport(
                    kind=ErrorKind.CONFIG_VALIDATION,
                    message=f"config '{key}' has invalid value {value!r}; using default",
                    node_id=node.id,
                    details={"key": key},
                )
            )
        return resolved.values

    def _full_inputs(self, node: NodeInstance, definition: NodeDefinition) -> dict[str, Any]:
        computed = self._last_inputs.get(node.id, {})
        inputs: dict[str, Any] = {}
        for port in definition.inputs:
            if port.kind == PortKind.SINK:
                inputs[port.id] = node.input_values.get(port.id)
            elif port.id in computed:
                inputs[port.id] = computed[port.id]
            else:
                value = node.input_values.get(port.id)
                inputs[port.id] = port.default_value if value is None else value
        return inputs

    def _run_disable_hook(
        self,
        node: NodeInstance,
        definition: NodeDefinition,
        now: float,
        delta: float,
        reports: list[EngineReport],
    ) -> None:
        if definition.on_disable is None:
            return
        context = ProcessContext(node.id, now, delta, self.finish_pulses)
        config = resolve_config(definition.config_schema, self._effective_config(node)).values
        try:
            definition.on_disable(self._full_inputs(node, definition), config, context)
        except Exception as exc:
            reports.append(
                EngineReport(
                    kind=ErrorKind.SINK_HANDLER,
                    message=f"on_disable failed in {node.type}: {exc}",
                    node_id=node.id,
                    details={"error": type(exc).__name__, "hook": "on_disable"},
                )
            )

    def _bypass_outputs(
        self, node: NodeInstance, definition: NodeDefinition, plan: _Plan
    ) -> dict[str, Any] | None:
        ports = _bypass_ports(definition)
        if ports is None:
            return None
        in_id, out_id = ports
        incoming = plan.data_inputs.get(node.id, {}).get(in_id)
        if incoming is None:
            return None
        has_outgoing = any(
            conn.source_node_id == node.id and conn.source_port_id == out_id
            for conn in self._connections
        )
        # Only a wire when both sides are connected.
        if not has_outgoing:
            return None
        source = self._nodes[incoming.source_node_id]
        return {out_id: source.output_values.get(incoming.source_port_id)}

    def _sink_pass(
        self,
        plan: _Plan,
        now: float,
        delta: float,
        blocked: set[str],
        reports: list[EngineReport],
    ) -> None:
        delivered = 0
        for node_id in plan.order:
            definition = plan.definitions[node_id]
            if definition.on_sink is None:
                continue
            if not self._node_enabled(node_id, blocked):
                continue
            if self.is_compute_enabled and not self.is_compute_enabled(node_id):
                continue
            if self.is_sink_enabled and not self.is_sink_enabled(node_id):
                continue
            node = self._nodes[node_id]

            connections = plan.sink_inputs.get(node_id, [])
            if not connections:
                if self._had_sink.get(node_id):
                    # Unplugged: let the node undo its side effects once.
                    self._run_disable_hook(node, definition, now, delta, reports)
                self._had_sink[node_id] = False
                self._delivered.pop(node_id, None)
                continue
            self._had_sink[node_id] = True

            fired: dict[str, list[Any]] = defaultdict(list)
            for conn in connections:
                value = self._nodes[conn.source_node_id].output_values.get(conn.source_port_id)
                if value is not None:
                    fired[conn.target_port_id].append(value)
            if not fired:
                continue

            for port_id, values in fired.items():
                node.input_values[port_id] = values[0] if len(values) == 1 else values
            inputs = self._full_inputs(node, definition)
            config = self._resolved_config(node, definition, [])

            previous = self._delivered.get(node_id)
            if previous is not None and _same(previous[0], inputs) and _same(previous[1], config):
                continue
            sink_inputs = dict(inputs)
            if previous is not None and _same(previous[1], config):
                data_changed = any(
                    not _same(previous[0].get(port.id), inputs.get(port.id))
                    for port in definition.data_inputs()
                )
                if not data_changed:
                    # Only the command bundle moved: deliver just the commands that changed.
                    for port in definition.sink_inputs():
                        before, after = previous[0].get(port.id), inputs.get(port.id)
                        if port.type == PortType.COMMAND and isinstance(before, list) and isinstance(after, list):
                            sink_inputs[port.id] = _diff_commands(before, after)

            delivered += sum(
                _count_values(sink_inputs.get(port.id)) for port in definition.sink_inputs()
            )
            if delivered > self.max_sink_values_per_tick:
                reports.append(
                    EngineReport(
                        kind=ErrorKind.SINK_HANDLER,
                        message=(
                            "sink burst exceeded budget "
                            f"({delivered} > {self.max_sink_values_per_tick})"
                        ),
                        node_id=node_id,
                        details={"reason": "sink-burst", "delivered": delivered},
                    )
                )
                break

            if self.detect_oscillation:
                self._watch_oscillation(node_id, definition, sink_inputs, now, reports)

            context = ProcessContext(node_id, now, delta, self.finish_pulses)
            try:
                definition.on_sink(sink_inputs, config, context)
            except Exception as exc:
                reports.append(
                    EngineReport(
                        kind=ErrorKind.SINK_HANDLER,
                        message=f"sink handler failed in {node.type}: {exc}",
                        node_id=node_id,
                        details={"error": type(exc).__name__},
                    )
                )
            finally:
                self._delivered[node_id] = (copy.deepcopy(inputs), copy.deepcopy(config))

    def _watch_oscillation(
        self,
        node_id: str,
        definition: NodeDefinition,
        sink_inputs: dict[str, Any],
        now: float,
        reports: list[EngineReport],
    ) -> None:
        """Warn when a sink port flips between two commands; delivery continues."""
        histories = self._sink_history.setdefault(node_id, {})
        for port in definition.sink_inputs():
            signature = _command_signature(sink_inputs.get(port.id))
            if signature is None:
                continue
            history = histories.setdefault(port.id, [])
            history.append((now, signature))
            del history[:-OSCILLATION_HISTORY]
            length = _alternating_run(history, OSCILLATION_MIN_RUN, OSCILLATION_WINDOW_SECONDS)
            if length:
                reports.append(
                    EngineReport(
                        kind=ErrorKind.SINK_HANDLER,
                        message=f"oscillation detected ({length} alternating changes)",
                        node_id=node_id,
                        details={
                            "reason": "oscillation",
                            "port": port.id,
                            "a": history[-length][1],
                            "b": history[-length + 1][1],
                            "length": length,
                        },
                    )
                )
                return

    def _log_once(self, report: EngineReport) -> None:
        key = (report.kind, report.node_id, report.connection_id, report.message)
        if key in self._logged:
            return
        self._logged.add(key)
        logger.warning("Tick %d: %s", self.tick_count, report)


def _perf() -> float:
    return time.perf_counter()


class TickLoop:
    """Fixed-rate asyncio driver around a :class:`GraphEngine`."""

    def __init__(
        self,
        engine: GraphEngine,
        *,
        tick_rate: float = 30.0,
        on_tick: Callable[[TickResult], Any] | None = None,
    ) -> None:
        self.engine = engine
        self.tick_rate = tick_rate
        self.on_tick = on_tick
        self.running = False
        self._task: asyncio.Task[None] | None = None

    async def start(self, tick_rate: float | None = None) -> None:
        if self.running:
            return
        if tick_rate is not None:
            self.tick_rate = float(tick_rate)
        self.engine.tick_interval = 1.0 / self.tick_rate
        self.running = True
        self._task = asyncio.create_task(self._run_loop())

    async def stop(self) -> None:
        if not self.running:
            return
        self.running = False
        if self._task:
            await self._task
            self._task = None
        self.engine.reset()

    async def _run_loop(self) -> None:
        while self.running:
            await self.step_once()
            await asyncio.sleep(max(0.0, 1.0 / self.tick_rate))

    async def step_once(self) -> TickResult:
        result = self.engine.tick()
        if self.on_tick:
            outcome = self.on_tick(result)
            if asyncio.iscoroutine(outcome):
                await outcome
        return result


def resolve_order(state: GraphState | Mapping[str, Any], registry: NodeRegistry) -> list[str]:
    """Strict evaluation order for ``state``; raises StructuralError on a cycle."""
    engine = GraphEngine(registry)
    engine.load_graph(state)
    plan = engine._resolve_plan(registry.snapshot())
    cyclic = [
        report.node_id
        for report in plan.reports
        if report.node_id and "cycle" in report.details
    ]
    if cyclic:
        raise StructuralError(
            "cycle detected in data connections: " + ", ".join(cyclic), node_ids=cyclic
        )
    return list(plan.order)
