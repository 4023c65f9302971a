"""CLI entrypoint for fleetgraph."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Annotated, Any, Optional

import typer

from fleetgraph.changes import validate_graph_state
from fleetgraph.config import load_settings
from fleetgraph.engine import GraphEngine, resolve_order
from fleetgraph.errors import ConfigValidationError, StructuralError
from fleetgraph.finish_pulse import FinishPulseBridge
from fleetgraph.groups import normalize_group_list
from fleetgraph.nodes import register_default_nodes
from fleetgraph.recorder import TickRecorder
from fleetgraph.registry import NodeRegistry
from fleetgraph.schema import parse_graph_state

app = typer.Typer(help="Fleet node-graph engine developer tools.")

logger = logging.getLogger(__name__)


def _load_registry(dispatch: Any = None) -> NodeRegistry:
    registry = NodeRegistry()
    register_default_nodes(registry, dispatch=dispatch)
    registry.discover_entry_points()
    return registry


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as err:
        raise typer.BadParameter(f"{path} is not valid JSON: {err}") from err


@app.command("nodes")
def list_nodes() -> None:
    """List registered node types by category."""
    registry = _load_registry()
    for category, definitions in registry.list_by_category().items():
        typer.echo(f"{category}:")
        for definition in definitions:
            typer.echo(f"  {definition.type}\t{definition.label}")


@app.command("describe")
def describe_node(node_type: str) -> None:
    """Show a node type's ports and config schema as JSON."""
    registry = _load_registry()
    try:
        definition = registry.require(node_type)
    except KeyError as err:
        raise typer.BadParameter(str(err)) from err
    typer.echo(json.dumps(definition.describe(), indent=2))


@app.command("validate")
def validate(
    graph: Annotated[Path, typer.Argument(exists=True, dir_okay=False)],
) -> None:
    """Validate a graph JSON file against the node catalogue."""
    registry = _load_registry()
    parsed = parse_graph_state(_read_json(graph))
    problems = list(parsed.issues)
    problems.extend(validate_graph_state(parsed.state, registry).errors)
    try:
        resolve_order(parsed.state, registry)
    except StructuralError as err:
        problems.append(str(err))

    if problems:
        for problem in problems:
            typer.echo(f"error: {problem}")
        raise typer.Exit(code=1)
    typer.echo(f"valid graph: {graph}")


@app.command("normalize-groups")
def normalize_groups(
    groups: Annotated[Path, typer.Argument(exists=True, dir_okay=False)],
) -> None:
    """Print the normalized form of a group list JSON file."""
    payload = _read_json(groups)
    if isinstance(payload, dict):
        payload = payload.get("groups")
    normalized = normalize_group_list(payload if isinstance(payload, list) else [])
    typer.echo(json.dumps([group.to_json() for group in normalized], indent=2))


@app.command("run")
def run(
    graph: Annotated[Path, typer.Argument(exists=True, dir_okay=False)],
    ticks: Annotated[int, typer.Option("--ticks", "-n", min=1)] = 1,
    config: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", exists=True, dir_okay=False),
    ] = None,
    groups: Annotated[
        Optional[Path],
        typer.Option("--groups", "-g", exists=True, dir_okay=False),
    ] = None,
    record: Annotated[bool, typer.Option("--record/--no-record")] = False,
) -> None:
    """Evaluate a graph for a number of ticks on virtual time."""
    try:
        settings = load_settings(config)
    except ConfigValidationError as err:
        raise typer.BadParameter(str(err)) from err
    logging.basicConfig(
        level=settings.numeric_log_level(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    dispatched: list[dict[str, Any]] = []
    registry = _load_registry(dispatch=dispatched.append)
    payload = _read_json(graph)

    recorder: TickRecorder | None = None
    if record:
        recorder = TickRecorder(settings.runs_root)
        run_dir = recorder.start(payload, settings.model_dump(mode="json"))
        logger.info("Recording run to %s", run_dir)

    with FinishPulseBridge(retention=settings.finish_retention_seconds) as bridge:
        engine = GraphEngine(
            registry,
            finish_pulses=bridge,
            tick_interval=settings.tick_interval,
            max_sink_values_per_tick=settings.max_sink_values_per_tick,
        )
        for report in engine.load_graph(payload):
            typer.echo(f"load: {report}")
            if recorder:
                recorder.record_event(str(report), level="warning")
        if groups is not None:
            group_payload = _read_json(groups)
            if isinstance(group_payload, dict):
                group_payload = group_payload.get("groups")
            engine.set_groups(group_payload if isinstance(group_payload, list) else [])

        result = None
        for index in range(ticks):
            result = engine.tick(time=index * settings.tick_interval)
            if recorder:
                recorder.record_tick(result)
            for report in result.reports:
                typer.echo(f"tick {result.tick}: {report}")
        engine.reset()

    if recorder:
        recorder.record_event(f"completed {ticks} ticks")
    summary = {
        "ticks": ticks,
        "order": result.order if result else [],
        "outputs": result.outputs if result else {},
        "dispatched": dispatched,
    }
    typer.echo(json.dumps(summary, indent=2, default=str))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
