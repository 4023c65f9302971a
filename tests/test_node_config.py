from fleetgraph.definitions import config_field
from fleetgraph.node_config import resolve_config


SCHEMA = [
    config_field("speed", "Speed", "number", default=1.0),
    config_field("enabled", "Enabled", "boolean", default=True),
    config_field("mode", "Mode", "select", default="a", options=["a", "b"]),
    config_field("label", "Label", "string", default=""),
    config_field("range", "Range", "time-range", default=None),
]


def test_missing_and_null_fields_use_defaults() -> None:
    resolved = resolve_config(SCHEMA, {"speed": None})

    assert resolved.values["speed"] == 1.0
    assert resolved.values["enabled"] is True
    assert resolved.values["mode"] == "a"
    assert resolved.invalid == {}


def test_invalid_values_fall_back_and_are_listed() -> None:
    resolved = resolve_config(
        SCHEMA,
        {"speed": "fast", "enabled": 1, "mode": "c", "label": 42, "range": {"start": 0}},
    )

    assert resolved.values["speed"] == 1.0
    assert resolved.values["enabled"] is True
    assert resolved.values["mode"] == "a"
    assert resolved.values["label"] == ""
    assert resolved.values["range"] == {"start": 0}
    assert set(resolved.invalid) == {"speed", "enabled", "mode", "label"}


def test_undeclared_keys_pass_through() -> None:
    resolved = resolve_config(SCHEMA, {"groupId": "g1", "speed": 2})

    assert resolved.values["groupId"] == "g1"
    assert resolved.values["speed"] == 2


def test_non_mapping_config_is_treated_as_empty() -> None:
    resolved = resolve_config(SCHEMA, None)

    assert resolved.values["label"] == ""
