"""Ping history schemas."""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel


class PingRecord(BaseModel):
    """A received ping."""
    id: int
    received_at: datetime
    kind: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    class Config:
        from_attributes = True


class PingsPage(BaseModel):
    """Paginated ping history."""
    items: List[PingRecord]
    total: int
    page: int
    per_page: int
    total_pages: int
