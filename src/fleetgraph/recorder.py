"""Run recorder for tick sessions."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from fleetgraph.engine import TickResult


def _json_line(record: dict[str, Any]) -> str:
    return json.dumps(record, default=str) + "\n"


class TickRecorder:
    """Writes one folder per run: the loaded graph, settings, and a tick log."""

    def __init__(self, runs_root: Path = Path("runs")) -> None:
        self.runs_root = runs_root
        self.run_dir: Path | None = None
        self.ticks_path: Path | None = None
        self.events_path: Path | None = None

    def start(self, graph: dict[str, Any], config_snapshot: dict[str, Any]) -> Path:
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        self.run_dir = self.runs_root / f"ticks_{timestamp}"
        self.run_dir.mkdir(parents=True, exist_ok=False)

        (self.run_dir / "graph.json").write_text(
            json.dumps(graph, indent=2, default=str), encoding="utf-8"
        )
        (self.run_dir / "config_snapshot.json").write_text(
            json.dumps(config_snapshot, indent=2, default=str), encoding="utf-8"
        )
        self.ticks_path = self.run_dir / "ticks.jsonl"
        self.events_path = self.run_dir / "events.log"
        self.ticks_path.touch()
        self.events_path.touch()
        return self.run_dir

    def record_tick(self, result: TickResult) -> None:
        if not self.ticks_path:
            return
        record = {
            "tick": result.tick,
            "time": result.time,
            "deltaTime": result.delta_time,
            "durationMs": round(result.duration * 1000, 3),
            "order": result.order,
            "outputs": result.outputs,
            "reports": [report.model_dump(mode="json") for report in result.reports],
        }
        with self.ticks_path.open("a", encoding="utf-8") as f:
            f.write(_json_line(record))

    def record_event(self, message: str, level: str = "info") -> None:
        if not self.events_path:
            return
        timestamp = datetime.now(timezone.utc).isoformat()
        with self.events_path.open("a", encoding="utf-8") as f:
            f.write(f"{timestamp} [{level.upper()}] {message}\n")
