"""One-shot "media finished" pulses bridged from playback into the graph.

A media-playback collaborator calls :meth:`FinishPulseBridge.report_finish`
when a clip completes; nodes pull the pulse once through
:meth:`FinishPulseBridge.consume_pulse`. Entries idle for longer than the
retention window are pruned on every call; nothing runs in the background.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

DEFAULT_RETENTION_SECONDS = 10 * 60


@dataclass
class FinishPulse:
    pending: bool
    updated_at: float


def _normalize_node_id(node_id: Any) -> str:
    return node_id.strip() if isinstance(node_id, str) else ""


class FinishPulseBridge:
    def __init__(
        self,
        *,
        retention: float = DEFAULT_RETENTION_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.retention = float(retention)
        self.clock = clock
        self._pulses: dict[str, FinishPulse] = {}
        self._lock = threading.Lock()
        self._open = True

    def start(self) -> "FinishPulseBridge":
        with self._lock:
            self._pulses.clear()
            self._open = True
        return self

    def close(self) -> None:
        with self._lock:
            self._pulses.clear()
            self._open = False

    @property
    def closed(self) -> bool:
        return not self._open

    def __enter__(self) -> "FinishPulseBridge":
        return self.start()

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _ensure_open(self) -> None:
        if not self._open:
            raise RuntimeError("finish pulse bridge is closed")

    def _prune(self, now: float) -> None:
        stale = [
            node_id
            for node_id, entry in self._pulses.items()
            if now - entry.updated_at > self.retention
        ]
        for node_id in stale:
            del self._pulses[node_id]

    def report_finish(self, node_id: str) -> None:
        key = _normalize_node_id(node_id)
        if not key:
            return
        with self._lock:
            self._ensure_open()
            now = self.clock()
            self._prune(now)
            self._pulses[key] = FinishPulse(pending=True, updated_at=now)

    def consume_pulse(self, node_id: str) -> bool:
        key = _normalize_node_id(node_id)
        if not key:
            return False
        with self._lock:
            self._ensure_open()
            now = self.clock()
            self._prune(now)
            entry = self._pulses.get(key)
            if entry is None or not entry.pending:
                return False
            entry.pending = False
            entry.updated_at = now
            return True

    def clear(self, node_id: str | None = None) -> None:
        with self._lock:
            if node_id is None:
                self._pulses.clear()
            else:
                self._pulses.pop(_normalize_node_id(node_id), None)

    def __len__(self) -> int:
        return len(self._pulses)
