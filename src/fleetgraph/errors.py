"""Error kinds and the structured report attached to each tick."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class FleetGraphError(Exception):
    """Base class for fatal engine errors."""


class RegistryError(FleetGraphError):
    """Raised on registry misuse (e.g. an engine built without a registry)."""


class StructuralError(FleetGraphError):
    """Raised by strict helpers when a graph cannot be ordered."""

    def __init__(self, message: str, node_ids: list[str] | None = None) -> None:
        super().__init__(message)
        self.node_ids = list(node_ids or [])


class ConfigValidationError(FleetGraphError, ValueError):
    """Raised when engine settings do not validate."""


class ErrorKind(str, Enum):
    STRUCTURAL = "structural"
    CONFIG_VALIDATION = "config-validation"
    INPUT_COERCION = "input-coercion"
    SINK_HANDLER = "sink-handler"
    COMPUTE = "compute"


class EngineReport(BaseModel):
    """A recoverable error surfaced to the caller instead of being raised."""

    model_config = ConfigDict(frozen=True)

    kind: ErrorKind
    message: str
    node_id: str | None = None
    connection_id: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)

    def __str__(self) -> str:
        where = f" [{self.node_id}]" if self.node_id else ""
        return f"{self.kind.value}{where}: {self.message}"
