"""Alert model - log of alert delivery attempts."""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Boolean
from sqlalchemy.orm import relationship

from ..database import Base
from ..utils.db_utils import utcnow


class Alert(Base):
    """Record of an alert sent via webhook or email."""

    __tablename__ = "alerts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    monitor_id = Column(Integer, ForeignKey("monitors.id", ondelete="CASCADE"), nullable=False)
    incident_id = Column(Integer, ForeignKey("incidents.id", ondelete="SET NULL"), nullable=True)
    alert_type = Column(String, nullable=False)  # down, recovery
    channel = Column(String, nullable=False)  # email, webhook
    sent_at = Column(DateTime, default=utcnow)
    payload = Column(String, nullable=True)  # JSON for webhook or email summary
    success = Column(Boolean, nullable=False, default=False)

    # Relationships
    monitor = relationship("Monitor", back_populates="alerts")
    incident = relationship("Incident", back_populates="alerts")
