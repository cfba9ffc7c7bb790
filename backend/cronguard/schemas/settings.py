"""Settings schemas for API."""
from typing import Optional
from pydantic import BaseModel, Field


class SettingsResponse(BaseModel):
    """Schema for settings response."""
    # Alert behaviour
    alert_on_recovery: bool = True
    resolve_incidents_on_recovery: bool = True

    # Ping endpoint protection
    ping_rate_limit_per_minute: int = 10

    archive_retention_days: int = 30

    # Email alert settings
    email_alerts_enabled: bool = False
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_use_tls: bool = True
    alert_email_from: Optional[str] = None


class SettingsUpdate(BaseModel):
    """Schema for updating settings."""
    alert_on_recovery: Optional[bool] = None
    resolve_incidents_on_recovery: Optional[bool] = None
    ping_rate_limit_per_minute: Optional[int] = Field(None, ge=1, le=1000)
    archive_retention_days: Optional[int] = Field(None, ge=1, le=365)
    email_alerts_enabled: Optional[bool] = None
    smtp_host: Optional[str] = None
    smtp_port: Optional[int] = Field(None, ge=1, le=65535)
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_use_tls: Optional[bool] = None
    alert_email_from: Optional[str] = None


class EmailTestRequest(BaseModel):
    """Recipient for a test email."""
    to: str = Field(..., min_length=3)
