"""Pydantic schemas for API request/response models."""
from .monitor import (
    MonitorCreate,
    MonitorUpdate,
    MonitorResponse,
)
from .ping import (
    PingRecord,
    PingsPage,
)
from .incident import IncidentResponse
from .settings import (
    SettingsResponse,
    SettingsUpdate,
    EmailTestRequest,
)
from .status import (
    StatusOverview,
    MonitorSummary,
    SweepResponse,
)
from .analytics import (
    MonitorAnalytics,
    PublicStatus,
)

__all__ = [
    "MonitorCreate",
    "MonitorUpdate",
    "MonitorResponse",
    "PingRecord",
    "PingsPage",
    "IncidentResponse",
    "SettingsResponse",
    "SettingsUpdate",
    "EmailTestRequest",
    "StatusOverview",
    "MonitorSummary",
    "SweepResponse",
    "MonitorAnalytics",
    "PublicStatus",
]
