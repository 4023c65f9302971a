import logging
from pathlib import Path

import pytest

from fleetgraph.config import ConfigValidationError, load_settings, validate_settings_dict


def test_defaults_without_file(monkeypatch) -> None:
    monkeypatch.delenv("FLEETGRAPH_TICK_RATE", raising=False)

    settings = load_settings()

    assert settings.tick_rate == 30.0
    assert settings.max_sink_values_per_tick == 200
    assert settings.finish_retention_seconds == 600
    assert settings.runs_root == Path("runs")


def test_valid_config_loads(tmp_path: Path) -> None:
    config_path = tmp_path / "engine.yaml"
    config_path.write_text("tick_rate: 60\nlog_level: debug\n", encoding="utf-8")

    settings = load_settings(config_path)

    assert settings.tick_interval == pytest.approx(1 / 60)
    assert settings.numeric_log_level() == logging.DEBUG


def test_environment_fills_missing_fields(monkeypatch) -> None:
    monkeypatch.setenv("FLEETGRAPH_MAX_SINK_VALUES_PER_TICK", "50")

    settings = validate_settings_dict({"tick_rate": 10})

    assert settings.max_sink_values_per_tick == 50
    assert settings.tick_rate == 10


def test_invalid_config_fails_validation(tmp_path: Path) -> None:
    config_path = tmp_path / "engine.yaml"
    config_path.write_text("tick_rate: 0\nextra_field: true\n", encoding="utf-8")

    with pytest.raises(ConfigValidationError):
        load_settings(config_path)


def test_non_mapping_root_is_rejected(tmp_path: Path) -> None:
    config_path = tmp_path / "engine.yaml"
    config_path.write_text("- 1\n- 2\n", encoding="utf-8")

    with pytest.raises(ConfigValidationError, match="mapping"):
        load_settings(config_path)
