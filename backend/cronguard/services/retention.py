"""Retention - purges archived monitors once their retention window ends."""
import logging
from datetime import datetime
from functools import partial
from typing import Optional

from sqlalchemy import select, delete

from ..database import async_session
from ..models import Monitor, Ping, Incident, Alert
from ..utils.db_utils import retry_on_lock, utcnow

logger = logging.getLogger(__name__)


class RetentionService:
    """Deletes archived monitors and all of their child records."""

    def __init__(self, session_factory=None):
        self._session_factory = session_factory or async_session

    async def purge_archived(self, now: Optional[datetime] = None) -> int:
        """Delete archived monitors whose delete_after has passed.

        Children (alerts, incidents, pings) go first, then the monitor, all in
        one transaction per monitor. Returns the number of monitors deleted.
        """
        now = now or utcnow()
        async with self._session_factory() as session:
            result = await session.execute(
                select(Monitor.id, Monitor.name)
                .where(
                    Monitor.archived.is_(True),
                    Monitor.delete_after.is_not(None),
                    Monitor.delete_after <= now,
                )
            )
            expired = result.all()

        if not expired:
            logger.debug("No archived monitors to delete")
            return 0

        deleted = 0
        for monitor_id, name in expired:
            try:
                await retry_on_lock(partial(self._purge_one, monitor_id))
                deleted += 1
                logger.info(f"Deleted archived monitor {name} ({monitor_id})")
            except Exception as e:
                logger.error(f"Error deleting archived monitor {monitor_id}: {e}")

        logger.info(f"Deleted {deleted} archived monitors")
        return deleted

    async def _purge_one(self, monitor_id: int):
        """Delete one monitor and its children in a single transaction."""
        async with self._session_factory() as session:
            await session.execute(delete(Alert).where(Alert.monitor_id == monitor_id))
            await session.execute(delete(Incident).where(Incident.monitor_id == monitor_id))
            await session.execute(delete(Ping).where(Ping.monitor_id == monitor_id))
            await session.execute(delete(Monitor).where(Monitor.id == monitor_id))
            await session.commit()


# Global instance
retention_service = RetentionService()
