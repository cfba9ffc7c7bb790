"""Monitor model - a recurring job expected to check in on a schedule."""
import enum
from sqlalchemy import Column, Integer, String, DateTime, Boolean, Index
from sqlalchemy.orm import relationship

from ..database import Base
from ..utils.db_utils import utcnow


class MonitorState(str, enum.Enum):
    """Liveness state of a monitor."""
    PENDING = "PENDING"  # created, never pinged
    RUNNING = "RUNNING"  # start signal received
    HEALTHY = "HEALTHY"
    LATE = "LATE"  # deadline passed, still inside grace period
    DOWN = "DOWN"
    PAUSED = "PAUSED"


# States the sweeper is allowed to move forward on deadline expiry
SWEEPABLE_STATES = (MonitorState.HEALTHY, MonitorState.LATE, MonitorState.RUNNING)


class Monitor(Base):
    """A monitored cron job, addressed by its ping slug."""

    __tablename__ = "monitors"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    slug = Column(String, nullable=False, unique=True, index=True)
    owner = Column(String, nullable=True)  # display only

    # Schedule
    expected_interval = Column(Integer, nullable=False)  # seconds
    grace_period = Column(Integer, nullable=False, default=300)  # seconds

    # Runtime state
    status = Column(String, nullable=False, default=MonitorState.PENDING.value)
    last_ping_at = Column(DateTime, nullable=True)
    last_started_at = Column(DateTime, nullable=True)
    next_expected_at = Column(DateTime, nullable=True)  # NULL only while PENDING

    # Notification targets
    alert_email = Column(String, nullable=True)
    alert_webhook = Column(String, nullable=True)  # generic webhook or Slack incoming webhook
    timezone = Column(String, default="UTC")

    # Public status page and badges, addressed by slug
    status_page_enabled = Column(Boolean, nullable=False, default=False)

    # Archival (soft delete with retention)
    archived = Column(Boolean, nullable=False, default=False)
    archived_at = Column(DateTime, nullable=True)
    delete_after = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow)

    # Relationships
    pings = relationship("Ping", back_populates="monitor", cascade="all, delete-orphan", passive_deletes=True)
    incidents = relationship("Incident", back_populates="monitor", cascade="all, delete-orphan", passive_deletes=True)
    alerts = relationship("Alert", back_populates="monitor", cascade="all, delete-orphan", passive_deletes=True)

    __table_args__ = (
        Index("ix_monitors_status_next_expected_at", "status", "next_expected_at"),
        Index("ix_monitors_archived_delete_after", "archived", "delete_after"),
    )
