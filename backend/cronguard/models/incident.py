"""Incident model - a recorded down period for a monitor."""
from sqlalchemy import Column, Integer, DateTime, ForeignKey, JSON, Index
from sqlalchemy.orm import relationship

from ..database import Base


class Incident(Base):
    """Opened when a monitor goes DOWN, closed by resolved_at."""

    __tablename__ = "incidents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    monitor_id = Column(Integer, ForeignKey("monitors.id", ondelete="CASCADE"), nullable=False)
    started_at = Column(DateTime, nullable=False)
    resolved_at = Column(DateTime, nullable=True)
    alerts_sent = Column(JSON, nullable=False, default=dict)  # channel -> delivered

    # Relationships
    monitor = relationship("Monitor", back_populates="incidents")
    alerts = relationship("Alert", back_populates="incident")

    __table_args__ = (
        # At most one open incident per monitor
        Index(
            "uq_incidents_open_per_monitor",
            "monitor_id",
            unique=True,
            sqlite_where=resolved_at.is_(None),
            postgresql_where=resolved_at.is_(None),
        ),
        Index("ix_incidents_monitor_started_at", "monitor_id", "started_at"),
    )