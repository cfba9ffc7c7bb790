"""Analytics and public status page schemas."""
from datetime import datetime
from typing import Dict, List, Optional
from pydantic import BaseModel


class UptimeWindow(BaseModel):
    uptime_percent: float
    downtime_seconds: int


class IncidentBrief(BaseModel):
    id: int
    started_at: datetime
    resolved_at: Optional[datetime] = None
    duration_seconds: int  # up to now while open


class IncidentStats(BaseModel):
    total: int
    total_downtime_seconds: int  # merged, so overlaps count once
    average_duration_seconds: float
    recent: List[IncidentBrief]


class PingBrief(BaseModel):
    received_at: datetime
    kind: str
    ip_address: Optional[str] = None


class PingStats(BaseModel):
    total: int
    recent: List[PingBrief]


class CurrentStatus(BaseModel):
    status: str
    last_ping_at: Optional[datetime] = None
    next_expected_at: Optional[datetime] = None


class MonitorAnalytics(BaseModel):
    """Uptime and history for one monitor."""
    monitor_id: int
    uptime: Dict[str, UptimeWindow]  # last_24h, last_7d, last_30d, last_90d, all_time
    incidents: IncidentStats
    pings: PingStats
    current_status: CurrentStatus


class PublicMonitor(BaseModel):
    name: str
    status: str
    last_ping_at: Optional[datetime] = None
    created_at: datetime


class PublicStatus(BaseModel):
    """What an opted-in monitor's public status page shows."""
    monitor: PublicMonitor
    uptime: Dict[str, UptimeWindow]  # last_30d, last_90d
    recent_incidents: List[IncidentBrief]
