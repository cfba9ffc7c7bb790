"""Recovery handling - closes incidents when a down monitor checks in again."""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select

from ..database import async_session
from ..models import Monitor
from ..utils.db_utils import utcnow
from .alerter import alerter_service
from .ingestor import ping_ingestor

logger = logging.getLogger(__name__)


async def handle_recovery(
    monitor_id: int,
    now: Optional[datetime] = None,
    send_alert: bool = True,
    ingestor=None,
    alerter=None,
    session_factory=None,
) -> Optional[dict]:
    """Resolve the open incident for a recovered monitor and notify its targets.

    Runs after the heartbeat has committed. Returns the channel -> delivered
    map, or None when there was no open incident to resolve.
    """
    now = now or utcnow()
    ingestor = ingestor or ping_ingestor
    alerter = alerter or alerter_service
    session_factory = session_factory or async_session

    incident = await ingestor.resolve_open_incident(monitor_id, now)
    if incident is None:
        return None
    if not send_alert:
        return {}

    try:
        async with session_factory() as session:
            result = await session.execute(select(Monitor).where(Monitor.id == monitor_id))
            monitor = result.scalar_one_or_none()
            if monitor is None:
                return {}
            channels = await alerter.dispatch_recovery(
                session, monitor, incident.id, started_at=incident.started_at, now=now
            )
            await session.commit()
            return channels
    except Exception as e:
        logger.error(f"Failed to send recovery alert for monitor {monitor_id}: {type(e).__name__}: {e}")
        return {}
