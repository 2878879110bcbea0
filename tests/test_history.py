from __future__ import annotations

from netguard.monitoring.classifier import analyze_locally
from netguard.monitoring.history import HistoryTracker
from netguard.monitoring.models import NodeMetrics

T0 = 1_700_000_000.0
MINUTE = 60


def test_rolling_average_keeps_only_the_last_hour() -> None:
    history = HistoryTracker(window=3600)

    history.record("A", 10, now=T0)
    history.record("A", 20, now=T0 + 10 * MINUTE)
    history.record("A", 30, now=T0 + 70 * MINUTE)

    # queried one minute after the last report
    assert history.average("A") == 25


def test_entry_exactly_one_window_old_is_kept() -> None:
    history = HistoryTracker(window=3600)
    history.record("A", 10, now=T0)
    assert history.record("A", 30, now=T0 + 3600) == 20


def test_unknown_node_average_is_zero() -> None:
    assert HistoryTracker().average("missing") == 0


def test_apply_fills_averages_without_touching_input() -> None:
    history = HistoryTracker()
    first = analyze_locally([NodeMetrics(name="A", users=4, speed_kbps=400, is_connected=True)])
    second = analyze_locally([NodeMetrics(name="A", users=4, speed_kbps=800, is_connected=True)])

    history.apply(first, now=T0)
    updated = history.apply(second, now=T0 + 5)

    assert updated.nodes[0].average_speed_kbps == 600
    assert second.nodes[0].average_speed_kbps == 0
    assert updated.global_analysis == second.global_analysis


def test_absent_node_keeps_its_last_average() -> None:
    history = HistoryTracker()
    history.record("A", 100, now=T0)
    history.record("B", 50, now=T0)

    history.record("B", 70, now=T0 + 2 * 3600)

    assert history.average("A") == 100
    assert history.average("B") == 70
