"""Uptime figures derived from a monitor's incident history.

A monitor counts as down from an incident's started_at until its resolved_at,
or until the end of the window while the incident is still open. Overlapping
incidents are merged before their lengths are summed so downtime is never
counted twice.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Tuple

# Rolling windows reported by the analytics and status endpoints
UPTIME_WINDOWS = {
    "last_24h": timedelta(hours=24),
    "last_7d": timedelta(days=7),
    "last_30d": timedelta(days=30),
    "last_90d": timedelta(days=90),
}

Period = Tuple[datetime, datetime]


@dataclass
class UptimeStats:
    uptime_percent: float
    downtime_seconds: int


def merge_periods(periods: Iterable[Period]) -> List[Period]:
    """Sort periods by start and merge the ones that overlap or touch."""
    merged: List[Period] = []
    for start, end in sorted(periods):
        if merged and start <= merged[-1][1]:
            last_start, last_end = merged[-1]
            merged[-1] = (last_start, max(last_end, end))
        else:
            merged.append((start, end))
    return merged


def downtime_periods(incidents, start: datetime, end: datetime) -> List[Period]:
    """Merged downtime periods of `incidents`, clamped to [start, end]."""
    clamped = []
    for incident in incidents:
        incident_end = incident.resolved_at or end
        period_start = max(incident.started_at, start)
        period_end = min(incident_end, end)
        if period_start < period_end:
            clamped.append((period_start, period_end))
    return merge_periods(clamped)


def uptime_stats(incidents, start: datetime, end: datetime) -> UptimeStats:
    """Uptime percentage of [start, end], clamped to 0..100."""
    total = (end - start).total_seconds()
    if total <= 0:
        return UptimeStats(uptime_percent=100.0, downtime_seconds=0)

    downtime = sum((e - s).total_seconds() for s, e in downtime_periods(incidents, start, end))
    percent = (total - downtime) / total * 100
    return UptimeStats(
        uptime_percent=round(max(0.0, min(100.0, percent)), 3),
        downtime_seconds=int(downtime),
    )


def window_start(created_at: Optional[datetime], now: datetime, window: Optional[timedelta]) -> datetime:
    """Start of a rolling window, never earlier than the monitor's creation."""
    if window is None:
        return created_at or now
    start = now - window
    if created_at and created_at > start:
        return created_at
    return start


def uptime_by_window(incidents, created_at: Optional[datetime], now: datetime, windows=None, all_time=True) -> dict:
    """UptimeStats for each named window, plus `all_time` unless turned off."""
    windows = UPTIME_WINDOWS if windows is None else windows
    incidents = list(incidents)
    stats = {
        name: uptime_stats(incidents, window_start(created_at, now, window), now)
        for name, window in windows.items()
    }
    if all_time:
        stats["all_time"] = uptime_stats(incidents, window_start(created_at, now, None), now)
    return stats


def incident_duration_seconds(incident, now: datetime) -> int:
    """Length of an incident, measured up to `now` while it is open."""
    return int(((incident.resolved_at or now) - incident.started_at).total_seconds())


def incident_totals(incidents, now: datetime) -> Tuple[int, float]:
    """Total merged downtime and the mean length of a merged down period."""
    incidents = list(incidents)
    if not incidents:
        return 0, 0.0
    start = min(incident.started_at for incident in incidents)
    merged = downtime_periods(incidents, start, now)
    total = sum((e - s).total_seconds() for s, e in merged)
    return int(total), (total / len(merged) if merged else 0.0)
