"""Monitor schemas for API."""
from datetime import datetime
from typing import Literal, Optional, Union
from pydantic import BaseModel, Field, HttpUrl

# Interval bounds: one minute to one week
MIN_INTERVAL_SECONDS = 60
MAX_INTERVAL_SECONDS = 86400 * 7
MAX_GRACE_SECONDS = 3600
DEFAULT_GRACE_SECONDS = 300

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class MonitorCreate(BaseModel):
    """Schema for creating a new monitor."""
    name: str = Field(..., min_length=1, max_length=100)
    expected_interval: int = Field(..., ge=MIN_INTERVAL_SECONDS, le=MAX_INTERVAL_SECONDS)
    grace_period: int = Field(default=DEFAULT_GRACE_SECONDS, ge=0, le=MAX_GRACE_SECONDS)
    alert_email: Optional[str] = Field(None, pattern=EMAIL_PATTERN, max_length=254)
    alert_webhook: Optional[HttpUrl] = None
    timezone: Optional[str] = Field(None, max_length=64)
    owner: Optional[str] = Field(None, max_length=255)
    status_page_enabled: bool = False


class MonitorUpdate(BaseModel):
    """Schema for updating a monitor. The slug is immutable."""
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    expected_interval: Optional[int] = Field(None, ge=MIN_INTERVAL_SECONDS, le=MAX_INTERVAL_SECONDS)
    grace_period: Optional[int] = Field(None, ge=0, le=MAX_GRACE_SECONDS)
    # Empty string clears a target
    alert_email: Optional[str] = Field(None, pattern=r"^$|" + EMAIL_PATTERN, max_length=254)
    alert_webhook: Optional[Union[HttpUrl, Literal[""]]] = None
    timezone: Optional[str] = Field(None, max_length=64)
    status_page_enabled: Optional[bool] = None


class MonitorResponse(BaseModel):
    """Schema for monitor in API responses."""
    id: int
    name: str
    slug: str
    owner: Optional[str] = None
    expected_interval: int
    grace_period: int
    status: str
    last_ping_at: Optional[datetime] = None
    last_started_at: Optional[datetime] = None
    next_expected_at: Optional[datetime] = None
    alert_email: Optional[str] = None
    alert_webhook: Optional[str] = None
    timezone: Optional[str] = None
    status_page_enabled: bool = False
    archived: bool = False
    archived_at: Optional[datetime] = None
    delete_after: Optional[datetime] = None
    created_at: datetime
    ping_url: Optional[str] = None

    class Config:
        from_attributes = True
