"""Ping ingestor - records check-ins and advances monitor deadlines.

Every accepted ping is one transaction: a conditional update of the monitor
row plus one inserted ping row. The update is guarded on the monitor not
being PAUSED, so a pause that lands between the lookup and the write turns
the ping into a no-op instead of overwriting the pause.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select, update

from ..database import async_session
from ..models import Monitor, MonitorState, Ping, PingKind, Incident
from ..utils.db_utils import utcnow

logger = logging.getLogger(__name__)


class MonitorNotFound(Exception):
    """No monitor matches the given slug or id."""

    def __init__(self, key):
        super().__init__(f"Monitor not found: {key}")
        self.key = key


@dataclass
class PingSource:
    """Caller metadata recorded with each ping."""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


@dataclass
class PingOutcome:
    """Result of ingesting one ping."""
    status: str  # ok, running, paused
    monitor_id: int
    previous_status: Optional[str] = None
    next_expected_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    had_open_incident: bool = False

    @property
    def recovered(self) -> bool:
        """True when a heartbeat brought a LATE or DOWN monitor back.

        An open incident counts too: a job that sends /start first is RUNNING
        by the time its heartbeat lands.
        """
        if self.status != "ok":
            return False
        return self.had_open_incident or self.previous_status in (
            MonitorState.LATE.value,
            MonitorState.DOWN.value,
        )


class PingIngestor:
    """Applies heartbeat and start signals to monitors."""

    def __init__(self, session_factory=None):
        self._session_factory = session_factory or async_session

    async def ingest(
        self,
        slug: str,
        kind: PingKind = PingKind.HEARTBEAT,
        source: Optional[PingSource] = None,
        now: Optional[datetime] = None,
    ) -> PingOutcome:
        """Record a ping for the monitor addressed by slug.

        Raises MonitorNotFound for an unknown slug. Not idempotent: each call
        appends a ping and, for heartbeats, moves the deadline.
        """
        kind = PingKind(kind)
        source = source or PingSource()
        now = now or utcnow()

        async with self._session_factory() as session:
            result = await session.execute(select(Monitor).where(Monitor.slug == slug))
            monitor = result.scalar_one_or_none()
            if monitor is None:
                raise MonitorNotFound(slug)

            if monitor.status == MonitorState.PAUSED:
                logger.debug(f"Ping for paused monitor {monitor.name} ignored")
                return PingOutcome(status="paused", monitor_id=monitor.id, previous_status=monitor.status)

            monitor_id = monitor.id
            previous_status = monitor.status
            had_open_incident = False

            if kind == PingKind.HEARTBEAT:
                open_result = await session.execute(
                    select(Incident.id)
                    .where(Incident.monitor_id == monitor_id, Incident.resolved_at.is_(None))
                    .limit(1)
                )
                had_open_incident = open_result.scalar_one_or_none() is not None
                next_expected_at = now + timedelta(seconds=monitor.expected_interval)
                values = {
                    "status": MonitorState.HEALTHY.value,
                    "last_ping_at": now,
                    "next_expected_at": next_expected_at,
                }
            else:
                next_expected_at = None
                values = {
                    "status": MonitorState.RUNNING.value,
                    "last_started_at": now,
                }

            updated = await session.execute(
                update(Monitor)
                .where(Monitor.id == monitor_id, Monitor.status != MonitorState.PAUSED.value)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if updated.rowcount == 0:
                # Paused between lookup and write
                await session.rollback()
                return PingOutcome(status="paused", monitor_id=monitor_id, previous_status=MonitorState.PAUSED.value)

            session.add(Ping(
                monitor_id=monitor_id,
                received_at=now,
                kind=kind.value,
                ip_address=source.ip_address,
                user_agent=source.user_agent,
            ))
            await session.commit()

        if kind == PingKind.HEARTBEAT:
            logger.debug(f"Heartbeat for {slug}: {previous_status} -> HEALTHY, next at {next_expected_at}")
            return PingOutcome(
                status="ok",
                monitor_id=monitor_id,
                previous_status=previous_status,
                next_expected_at=next_expected_at,
                had_open_incident=had_open_incident,
            )

        logger.debug(f"Start signal for {slug}: {previous_status} -> RUNNING")
        return PingOutcome(
            status="running",
            monitor_id=monitor_id,
            previous_status=previous_status,
            started_at=now,
        )

    async def resolve_open_incident(self, monitor_id: int, now: Optional[datetime] = None) -> Optional[Incident]:
        """Close the monitor's open incident, if any, in its own transaction."""
        now = now or utcnow()
        async with self._session_factory() as session:
            result = await session.execute(
                select(Incident)
                .where(Incident.monitor_id == monitor_id, Incident.resolved_at.is_(None))
                .order_by(Incident.started_at.desc())
                .limit(1)
            )
            incident = result.scalar_one_or_none()
            if incident is None:
                return None

            closed = await session.execute(
                update(Incident)
                .where(Incident.id == incident.id, Incident.resolved_at.is_(None))
                .values(resolved_at=now)
                .execution_options(synchronize_session=False)
            )
            if closed.rowcount == 0:
                # Resolved concurrently
                await session.rollback()
                return None
            await session.commit()

        incident.resolved_at = now
        logger.info(f"Incident {incident.id} for monitor {monitor_id} resolved")
        return incident


# Global instance
ping_ingestor = PingIngestor()
