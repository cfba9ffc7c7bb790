"""Ping model - append-only log of check-ins received for a monitor."""
import enum
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship

from ..database import Base


class PingKind(str, enum.Enum):
    """Kind of check-in signal."""
    HEARTBEAT = "heartbeat"  # job completed
    START = "start"  # job started


class Ping(Base):
    """A single check-in. Written once, never updated."""

    __tablename__ = "pings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    monitor_id = Column(Integer, ForeignKey("monitors.id", ondelete="CASCADE"), nullable=False)
    received_at = Column(DateTime, nullable=False)
    kind = Column(String, nullable=False, default=PingKind.HEARTBEAT.value)
    ip_address = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)

    # Relationship
    monitor = relationship("Monitor", back_populates="pings")

    __table_args__ = (
        Index("ix_pings_monitor_received_at", "monitor_id", "received_at"),
    )
