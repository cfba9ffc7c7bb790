"""Incident schemas."""
from datetime import datetime
from typing import Dict, Optional
from pydantic import BaseModel


class IncidentResponse(BaseModel):
    """An incident with its computed duration."""
    id: int
    monitor_id: int
    started_at: datetime
    resolved_at: Optional[datetime] = None
    alerts_sent: Dict[str, bool] = {}
    duration_seconds: Optional[int] = None  # None while open
