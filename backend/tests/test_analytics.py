from datetime import timedelta

from cronguard.models import Incident
from cronguard.services.analytics import (
    incident_duration_seconds,
    incident_totals,
    merge_periods,
    uptime_by_window,
    uptime_stats,
    window_start,
)

from conftest import T0, at


def incident(start, end=None):
    return Incident(monitor_id=1, started_at=at(start), resolved_at=at(end) if end is not None else None)


def test_merge_periods_joins_overlapping_and_touching():
    merged = merge_periods([(at(300), at(400)), (at(0), at(100)), (at(50), at(150)), (at(150), at(200))])

    assert merged == [(at(0), at(200)), (at(300), at(400))]


def test_uptime_counts_overlap_once():
    incidents = [incident(0, 100), incident(50, 150), incident(300, 400)]

    stats = uptime_stats(incidents, at(0), at(1000))

    assert stats.downtime_seconds == 250
    assert stats.uptime_percent == 75.0


def test_open_incident_runs_to_window_end():
    stats = uptime_stats([incident(900)], at(0), at(1000))

    assert stats.downtime_seconds == 100
    assert stats.uptime_percent == 90.0


def test_incidents_are_clamped_to_window():
    stats = uptime_stats([incident(-500, 100), incident(950, 2000)], at(0), at(1000))

    assert stats.downtime_seconds == 150


def test_empty_window_is_fully_up():
    assert uptime_stats([incident(0, 10)], at(100), at(100)).uptime_percent == 100.0


def test_window_start_never_precedes_creation():
    now = at(86400 * 10)

    assert window_start(at(0), now, timedelta(days=30)) == at(0)
    assert window_start(at(0), now, timedelta(days=1)) == at(86400 * 9)
    assert window_start(at(0), now, None) == T0


def test_uptime_by_window_reports_each_window():
    now = at(86400 * 3)
    stats = uptime_by_window([incident(86400 * 2, 86400 * 2 + 864)], at(0), now)

    assert set(stats) == {"last_24h", "last_7d", "last_30d", "last_90d", "all_time"}
    assert stats["last_24h"].uptime_percent == 99.0
    assert stats["last_7d"].downtime_seconds == 864
    assert stats["last_7d"].uptime_percent == stats["all_time"].uptime_percent


def test_incident_totals_use_merged_periods():
    incidents = [incident(0, 100), incident(50, 150), incident(300, 400)]

    total, average = incident_totals(incidents, at(1000))

    assert total == 250
    assert average == 125.0
    assert incident_totals([], at(0)) == (0, 0.0)


def test_incident_duration_of_open_incident():
    assert incident_duration_seconds(incident(100), at(160)) == 60
    assert incident_duration_seconds(incident(100, 130), at(160)) == 30
