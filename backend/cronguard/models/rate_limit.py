"""RateLimitCounter model - shared fixed-window request counters."""
from sqlalchemy import Column, Integer, String, DateTime

from ..database import Base


class RateLimitCounter(Base):
    """Request count for one identity within its current window."""

    __tablename__ = "rate_limit_counters"

    key = Column(String, primary_key=True)  # e.g. "ping:<slug>"
    count = Column(Integer, nullable=False, default=0)
    reset_at = Column(DateTime, nullable=False, index=True)
