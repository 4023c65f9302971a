"""Engine settings: YAML file values layered over ``FLEETGRAPH_*`` environment."""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from fleetgraph.errors import ConfigValidationError
from fleetgraph.finish_pulse import DEFAULT_RETENTION_SECONDS


class EngineSettings(BaseSettings):
    """Runtime knobs for the tick engine and its tooling."""

    model_config = SettingsConfigDict(env_prefix="FLEETGRAPH_", extra="forbid")

    tick_rate: float = Field(default=30.0, gt=0)
    max_sink_values_per_tick: int = Field(default=200, ge=1)
    finish_retention_seconds: float = Field(default=DEFAULT_RETENTION_SECONDS, gt=0)
    log_level: str = "INFO"
    runs_root: Path = Path("runs")

    @property
    def tick_interval(self) -> float:
        return 1.0 / self.tick_rate

    def numeric_log_level(self) -> int:
        level = logging.getLevelName(self.log_level.upper())
        return level if isinstance(level, int) else logging.INFO


def validate_settings_dict(raw: object) -> EngineSettings:
    """Validate a pre-loaded settings mapping."""
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigValidationError("Config file root must be a mapping/object.")

    try:
        return EngineSettings(**raw)
    except ValidationError as exc:
        raise ConfigValidationError(str(exc)) from exc


def load_settings(path: Path | None = None) -> EngineSettings:
    """Load settings from an optional YAML file; environment fills the gaps."""
    if path is None:
        return validate_settings_dict({})
    try:
        with path.open("r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigValidationError(f"Invalid YAML in {path}: {exc}") from exc
    return validate_settings_dict(raw)
