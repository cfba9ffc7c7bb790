"""Settings model - key-value store for global configuration."""
from sqlalchemy import Column, String, DateTime, select

from ..database import Base
from ..utils.db_utils import utcnow


class Setting(Base):
    """Global settings stored as key-value pairs."""

    __tablename__ = "settings"

    key = Column(String, primary_key=True)
    value = Column(String, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


# Default settings
DEFAULT_SETTINGS = {
    # Alert behaviour
    "alert_on_recovery": "1",  # 0 or 1
    "resolve_incidents_on_recovery": "1",  # 0 or 1

    # Ping endpoint protection
    "ping_rate_limit_per_minute": "10",

    # Days an archived monitor is kept before it is purged
    "archive_retention_days": "30",

    # Email alert settings
    "email_alerts_enabled": "0",  # 0 or 1
    "smtp_host": "",
    "smtp_port": "587",
    "smtp_username": "",
    "smtp_password": "",
    "smtp_use_tls": "1",  # 0 or 1
    "alert_email_from": "",
}


async def get_all_settings(session) -> dict:
    """Get all settings as a dictionary, stored values over defaults."""
    result = await session.execute(select(Setting))
    settings_dict = dict(DEFAULT_SETTINGS)
    for setting in result.scalars().all():
        settings_dict[setting.key] = setting.value
    return settings_dict


def bool_from_str(val) -> bool:
    """Convert stored '0'/'1' (or 'true'/'false') to bool."""
    return str(val) == "1" or str(val).lower() == "true"
