import pytest

from fleetgraph.finish_pulse import FinishPulseBridge


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_pulse_is_consumed_once() -> None:
    bridge = FinishPulseBridge(clock=FakeClock())

    bridge.report_finish("n1")

    assert bridge.consume_pulse("n1") is True
    assert bridge.consume_pulse("n1") is False


def test_pulse_expires_after_retention() -> None:
    clock = FakeClock()
    bridge = FinishPulseBridge(retention=600, clock=clock)

    bridge.report_finish("n1")
    clock.now = 601.0

    assert bridge.consume_pulse("n1") is False
    assert len(bridge) == 0


def test_repeated_reports_collapse_into_one_pulse() -> None:
    bridge = FinishPulseBridge(clock=FakeClock())

    bridge.report_finish("n1")
    bridge.report_finish(" n1 ")

    assert bridge.consume_pulse("n1") is True
    assert bridge.consume_pulse("n1") is False


def test_blank_ids_are_ignored() -> None:
    bridge = FinishPulseBridge(clock=FakeClock())

    bridge.report_finish("  ")

    assert len(bridge) == 0
    assert bridge.consume_pulse("") is False


def test_clear_one_or_all() -> None:
    bridge = FinishPulseBridge(clock=FakeClock())
    bridge.report_finish("a")
    bridge.report_finish("b")

    bridge.clear("a")
    assert bridge.consume_pulse("a") is False
    assert bridge.consume_pulse("b") is True

    bridge.report_finish("c")
    bridge.clear()
    assert len(bridge) == 0


def test_closed_bridge_rejects_use() -> None:
    with FinishPulseBridge(clock=FakeClock()) as bridge:
        bridge.report_finish("n1")

    assert bridge.closed
    with pytest.raises(RuntimeError, match="closed"):
        bridge.consume_pulse("n1")

    bridge.start()
    assert bridge.consume_pulse("n1") is False
