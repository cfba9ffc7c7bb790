"""Status overview schemas for dashboard."""
from datetime import datetime
from typing import Dict, List, Optional
from pydantic import BaseModel


class MonitorSummary(BaseModel):
    """Summary of a monitor for dashboard."""
    id: int
    name: str
    slug: str
    status: str
    last_ping_at: Optional[datetime] = None
    next_expected_at: Optional[datetime] = None


class StatusOverview(BaseModel):
    """Dashboard overview data."""
    total_monitors: int
    by_status: Dict[str, int]
    open_incidents: int
    monitors: List[MonitorSummary]


class SweepResponse(BaseModel):
    """Summary of an on-demand sweep."""
    checked: int
    late: int
    down: int
    incidents_opened: int
    errors: int
