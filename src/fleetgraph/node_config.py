"""Lazy validation of node config values against a definition's schema."""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from fleetgraph.schema import ConfigField, ConfigFieldType


@dataclass
class ResolvedConfig:
    values: dict[str, Any]
    invalid: dict[str, Any] = field(default_factory=dict)


def _valid_for(config_field: ConfigField, value: Any) -> bool:
    kind = config_field.type
    if kind == ConfigFieldType.NUMBER:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        return math.isfinite(value)
    if kind == ConfigFieldType.BOOLEAN:
        return isinstance(value, bool)
    if kind == ConfigFieldType.STRING:
        return isinstance(value, str)
    if kind == ConfigFieldType.SELECT:
        if not isinstance(value, str):
            return False
        if not config_field.options:
            return True
        return any(option.value == value for option in config_field.options)
    # Editor-only field kinds carry structured payloads; accept them as-is.
    return True


def resolve_config(schema: list[ConfigField], raw: Mapping[str, Any] | None) -> ResolvedConfig:
    """Default absent fields and replace invalid ones with the field default.

    Keys not declared in the schema pass through untouched.
    """
    source = dict(raw) if isinstance(raw, Mapping) else {}
    values = dict(source)
    invalid: dict[str, Any] = {}
    for config_field in schema:
        key = config_field.key
        if key not in source or source[key] is None:
            values[key] = config_field.default_value
            continue
        if not _valid_for(config_field, source[key]):
            invalid[key] = source[key]
            values[key] = config_field.default_value
    return ResolvedConfig(values, invalid)
