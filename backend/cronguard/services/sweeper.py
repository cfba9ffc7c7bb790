"""Liveness sweeper - moves overdue monitors to LATE and DOWN.

Each tick runs one query for overdue candidates and then handles every
candidate in its own transaction:

    HEALTHY/RUNNING --(deadline passed, within grace)--> LATE
    HEALTHY/LATE/RUNNING --(grace expired)--> DOWN [+ incident, + alert]

Transitions are conditional updates guarded on the status and deadline the
sweep observed, so a ping or a second sweep racing on the same monitor makes
the update affect no rows and the sweep backs off. An incident is opened only
by the transaction that performed the move into DOWN, and only when no
incident is already open. Alert delivery happens after that commit and can
fail without undoing it.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import select, update

from ..database import async_session
from ..models import Monitor, MonitorState, Incident
from ..models.monitor import SWEEPABLE_STATES
from ..utils.db_utils import utcnow
from .alerter import alerter_service

logger = logging.getLogger(__name__)

# States a monitor may be in for each sweep target
_LATE_FROM = [MonitorState.HEALTHY.value, MonitorState.RUNNING.value]
_DOWN_FROM = [state.value for state in SWEEPABLE_STATES]


def evaluate(
    status: str,
    next_expected_at: Optional[datetime],
    grace_period: int,
    now: datetime,
) -> Optional[MonitorState]:
    """Return the state a monitor should move to at `now`, or None to leave it.

    PENDING, PAUSED and DOWN monitors are never moved. A deadline equal to
    `now` counts as passed; the grace period ends inclusively at DOWN.
    """
    if status not in _DOWN_FROM or next_expected_at is None:
        return None
    if now < next_expected_at:
        return None

    grace_end = next_expected_at + timedelta(seconds=grace_period or 0)
    if now < grace_end:
        if status == MonitorState.LATE:
            return None
        return MonitorState.LATE
    return MonitorState.DOWN


@dataclass
class SweepTransition:
    """A transition committed by the sweeper."""
    monitor_id: int
    previous_status: str
    new_status: MonitorState
    incident_id: Optional[int] = None
    incident_opened: bool = False


@dataclass
class SweepResult:
    """Summary of one sweep run."""
    checked: int = 0
    late: int = 0
    down: int = 0
    incidents_opened: int = 0
    errors: int = 0
    transitions: List[SweepTransition] = field(default_factory=list)


class LivenessSweeper:
    """Detects monitors that missed their deadline and records the outage."""

    def __init__(self, session_factory=None, alerter=None):
        self._session_factory = session_factory or async_session
        self._alerter = alerter or alerter_service

    async def find_overdue(self, now: datetime) -> List[int]:
        """Ids of sweepable, non-archived monitors whose deadline has passed."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Monitor.id)
                .where(
                    Monitor.status.in_(_DOWN_FROM),
                    Monitor.next_expected_at.is_not(None),
                    Monitor.next_expected_at <= now,
                    Monitor.archived.is_(False),
                )
                .order_by(Monitor.next_expected_at)
            )
            return list(result.scalars().all())

    async def sweep(self, now: Optional[datetime] = None) -> SweepResult:
        """Run one sweep pass. Safe to abort and re-run."""
        now = now or utcnow()
        summary = SweepResult()

        candidates = await self.find_overdue(now)
        summary.checked = len(candidates)
        if not candidates:
            return summary

        logger.debug(f"Sweeping {len(candidates)} overdue monitors at {now.isoformat()}")

        for monitor_id in candidates:
            try:
                transition = await self.apply_transition(monitor_id, now)
            except Exception as e:
                # One bad monitor must not stall the rest of the sweep
                logger.error(f"Error sweeping monitor {monitor_id}: {type(e).__name__}: {e}")
                summary.errors += 1
                continue

            if transition is None:
                continue

            summary.transitions.append(transition)
            if transition.new_status == MonitorState.LATE:
                summary.late += 1
                continue

            summary.down += 1
            if transition.incident_opened:
                summary.incidents_opened += 1
            await self.send_down_alert(transition, now)

        if summary.late or summary.down or summary.errors:
            logger.info(
                f"Sweep complete: checked={summary.checked} late={summary.late} "
                f"down={summary.down} incidents={summary.incidents_opened} errors={summary.errors}"
            )
        return summary

    async def apply_transition(self, monitor_id: int, now: datetime) -> Optional[SweepTransition]:
        """Evaluate and persist one monitor's transition atomically."""
        async with self._session_factory() as session:
            result = await session.execute(select(Monitor).where(Monitor.id == monitor_id))
            monitor = result.scalar_one_or_none()
            if monitor is None:
                return None

            target = evaluate(monitor.status, monitor.next_expected_at, monitor.grace_period, now)
            if target is None:
                return None

            name = monitor.name
            previous_status = monitor.status
            allowed_from = _LATE_FROM if target == MonitorState.LATE else _DOWN_FROM

            updated = await session.execute(
                update(Monitor)
                .where(
                    Monitor.id == monitor_id,
                    Monitor.status.in_(allowed_from),
                    Monitor.next_expected_at == monitor.next_expected_at,
                )
                .values(status=target.value)
                .execution_options(synchronize_session=False)
            )
            if updated.rowcount == 0:
                # A ping or another sweep got there first
                await session.rollback()
                logger.debug(f"Monitor {monitor_id} changed during sweep, skipping")
                return None

            transition = SweepTransition(
                monitor_id=monitor_id,
                previous_status=previous_status,
                new_status=target,
            )

            if target == MonitorState.DOWN:
                open_result = await session.execute(
                    select(Incident.id)
                    .where(Incident.monitor_id == monitor_id, Incident.resolved_at.is_(None))
                    .limit(1)
                )
                open_incident_id = open_result.scalar_one_or_none()
                if open_incident_id is None:
                    incident = Incident(
                        monitor_id=monitor_id,
                        started_at=now,
                        resolved_at=None,
                        alerts_sent={},
                    )
                    session.add(incident)
                    await session.flush()
                    transition.incident_id = incident.id
                    transition.incident_opened = True
                else:
                    transition.incident_id = open_incident_id

            await session.commit()

        if target == MonitorState.LATE:
            logger.info(f"Monitor {name} is LATE")
        else:
            logger.info(f"Monitor {name} is DOWN ({previous_status} -> DOWN)")
        return transition

    async def send_down_alert(self, transition: SweepTransition, now: datetime) -> dict:
        """Dispatch the DOWN alert and record which channels delivered.

        Failures are logged; the committed transition stands regardless.
        """
        try:
            async with self._session_factory() as session:
                result = await session.execute(select(Monitor).where(Monitor.id == transition.monitor_id))
                monitor = result.scalar_one_or_none()
                if monitor is None:
                    return {}

                channels = await self._alerter.dispatch_down(session, monitor, transition.incident_id, now)

                if transition.incident_id is not None and channels:
                    incident = await session.get(Incident, transition.incident_id)
                    if incident is not None:
                        incident.alerts_sent = {**(incident.alerts_sent or {}), **channels}

                await session.commit()
                return channels
        except Exception as e:
            logger.error(f"Failed to send down alert for monitor {transition.monitor_id}: {type(e).__name__}: {e}")
            return {}


# Global instance
liveness_sweeper = LivenessSweeper()
