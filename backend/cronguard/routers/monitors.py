"""Monitor CRUD and lifecycle API endpoints."""
import re
import secrets
from datetime import timedelta
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings as app_settings
from ..database import get_db
from ..models import Monitor, MonitorState, Ping, Incident
from ..models.settings import get_all_settings
from ..schemas.monitor import MonitorCreate, MonitorUpdate, MonitorResponse
from ..schemas.ping import PingRecord, PingsPage
from ..schemas.incident import IncidentResponse
from ..schemas.analytics import (
    CurrentStatus,
    IncidentBrief,
    IncidentStats,
    MonitorAnalytics,
    PingBrief,
    PingStats,
    UptimeWindow,
)
from ..services.analytics import incident_duration_seconds, incident_totals, uptime_by_window
from ..utils.db_utils import utcnow

router = APIRouter(prefix="/api/monitors", tags=["monitors"])


def generate_slug(name: str) -> str:
    """Readable, unguessable ping slug: the slug is the ping URL's only secret."""
    base = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")[:48] or "monitor"
    return f"{base}-{secrets.token_hex(6)}"


def _to_response(monitor: Monitor) -> MonitorResponse:
    response = MonitorResponse.model_validate(monitor)
    response.ping_url = f"{app_settings.public_base_url.rstrip('/')}/api/ping/{monitor.slug}"
    return response


async def _get_monitor_or_404(db: AsyncSession, monitor_id: int) -> Monitor:
    result = await db.execute(select(Monitor).where(Monitor.id == monitor_id))
    monitor = result.scalar_one_or_none()
    if not monitor:
        raise HTTPException(status_code=404, detail="Monitor not found")
    return monitor


@router.get("", response_model=List[MonitorResponse])
async def list_monitors(
    include_archived: bool = Query(default=False),
    db: AsyncSession = Depends(get_db),
):
    """List monitors, newest first."""
    query = select(Monitor).order_by(Monitor.created_at.desc(), Monitor.id.desc())
    if not include_archived:
        query = query.where(Monitor.archived.is_(False))
    result = await db.execute(query)
    return [_to_response(m) for m in result.scalars().all()]


@router.post("", response_model=MonitorResponse, status_code=201)
async def create_monitor(monitor: MonitorCreate, db: AsyncSession = Depends(get_db)):
    """Create a new monitor. It stays PENDING, with no deadline, until its first ping."""
    db_monitor = Monitor(
        name=monitor.name,
        slug=generate_slug(monitor.name),
        owner=monitor.owner,
        expected_interval=monitor.expected_interval,
        grace_period=monitor.grace_period,
        status=MonitorState.PENDING.value,
        last_ping_at=None,
        next_expected_at=None,
        alert_email=monitor.alert_email,
        alert_webhook=str(monitor.alert_webhook) if monitor.alert_webhook else None,
        timezone=monitor.timezone or "UTC",
        status_page_enabled=monitor.status_page_enabled,
        created_at=utcnow(),
    )
    db.add(db_monitor)

    await db.commit()
    await db.refresh(db_monitor)

    return _to_response(db_monitor)


@router.get("/{monitor_id}", response_model=MonitorResponse)
async def get_monitor(monitor_id: int, db: AsyncSession = Depends(get_db)):
    """Get a specific monitor by ID."""
    monitor = await _get_monitor_or_404(db, monitor_id)
    return _to_response(monitor)


async def change_interval(db: AsyncSession, monitor: Monitor, interval: int, now=None) -> bool:
    """Set a new expected_interval and move the deadline to last_ping_at + interval.

    The deadline write is guarded on the status and last_ping_at read from
    `monitor`. If a ping or sweep changed either in between, only the interval
    is stored and their deadline stands. A LATE monitor whose new deadline lies
    ahead goes back to HEALTHY. Returns True when the deadline moved.
    """
    now = now or utcnow()
    observed_ping = monitor.last_ping_at
    observed_status = monitor.status

    if observed_ping is not None and observed_status not in (MonitorState.PENDING, MonitorState.PAUSED):
        new_deadline = observed_ping + timedelta(seconds=interval)
        values = {"expected_interval": interval, "next_expected_at": new_deadline}
        if observed_status == MonitorState.LATE and new_deadline > now:
            values["status"] = MonitorState.HEALTHY.value

        moved = await db.execute(
            update(Monitor)
            .where(
                Monitor.id == monitor.id,
                Monitor.status == observed_status,
                Monitor.last_ping_at == observed_ping,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if moved.rowcount:
            return True

    await db.execute(
        update(Monitor)
        .where(Monitor.id == monitor.id)
        .values(expected_interval=interval)
        .execution_options(synchronize_session=False)
    )
    return False


@router.patch("/{monitor_id}", response_model=MonitorResponse)
async def update_monitor(
    monitor_id: int,
    update_data: MonitorUpdate,
    db: AsyncSession = Depends(get_db),
):
    """Update a monitor's configuration."""
    monitor = await _get_monitor_or_404(db, monitor_id)

    if update_data.name is not None:
        monitor.name = update_data.name
    if update_data.grace_period is not None:
        monitor.grace_period = update_data.grace_period
    if update_data.alert_email is not None:
        monitor.alert_email = update_data.alert_email or None
    if update_data.alert_webhook is not None:
        monitor.alert_webhook = str(update_data.alert_webhook) or None
    if update_data.timezone is not None:
        monitor.timezone = update_data.timezone
    if update_data.status_page_enabled is not None:
        monitor.status_page_enabled = update_data.status_page_enabled
    if update_data.expected_interval is not None:
        await change_interval(db, monitor, update_data.expected_interval)

    await db.commit()
    await db.refresh(monitor)

    return _to_response(monitor)


@router.delete("/{monitor_id}", status_code=204)
async def delete_monitor(monitor_id: int, db: AsyncSession = Depends(get_db)):
    """Delete a monitor together with its pings, incidents and alerts."""
    monitor = await _get_monitor_or_404(db, monitor_id)
    await db.delete(monitor)
    await db.commit()


@router.post("/{monitor_id}/pause", response_model=MonitorResponse)
async def pause_monitor(monitor_id: int, db: AsyncSession = Depends(get_db)):
    """Freeze a monitor. Pings are acknowledged but ignored until it is resumed."""
    monitor = await _get_monitor_or_404(db, monitor_id)

    await db.execute(
        update(Monitor)
        .where(Monitor.id == monitor_id, Monitor.status != MonitorState.PAUSED.value)
        .values(status=MonitorState.PAUSED.value)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    await db.refresh(monitor)

    return _to_response(monitor)


@router.post("/{monitor_id}/resume", response_model=MonitorResponse)
async def resume_monitor(monitor_id: int, db: AsyncSession = Depends(get_db)):
    """Unfreeze a paused monitor. It re-enters PENDING and waits for its next ping."""
    monitor = await _get_monitor_or_404(db, monitor_id)

    if monitor.archived:
        raise HTTPException(status_code=409, detail="Restore the monitor before resuming it")

    resumed = await db.execute(
        update(Monitor)
        .where(Monitor.id == monitor_id, Monitor.status == MonitorState.PAUSED.value)
        .values(status=MonitorState.PENDING.value, next_expected_at=None)
        .execution_options(synchronize_session=False)
    )
    if resumed.rowcount == 0:
        await db.rollback()
        raise HTTPException(status_code=409, detail="Monitor is not paused")

    await db.commit()
    await db.refresh(monitor)

    return _to_response(monitor)


@router.post("/{monitor_id}/archive", response_model=MonitorResponse)
async def archive_monitor(monitor_id: int, db: AsyncSession = Depends(get_db)):
    """Pause and archive a monitor. It is purged once its retention window ends."""
    monitor = await _get_monitor_or_404(db, monitor_id)
    stored = await get_all_settings(db)
    retention_days = int(stored.get("archive_retention_days", 30))

    now = utcnow()
    monitor.status = MonitorState.PAUSED.value
    monitor.archived = True
    monitor.archived_at = now
    monitor.delete_after = now + timedelta(days=retention_days)

    await db.commit()
    await db.refresh(monitor)

    return _to_response(monitor)


@router.post("/{monitor_id}/restore", response_model=MonitorResponse)
async def restore_monitor(monitor_id: int, db: AsyncSession = Depends(get_db)):
    """Take a monitor out of the archive. It stays paused until resumed."""
    monitor = await _get_monitor_or_404(db, monitor_id)

    if not monitor.archived:
        raise HTTPException(status_code=409, detail="Monitor is not archived")

    monitor.archived = False
    monitor.archived_at = None
    monitor.delete_after = None

    await db.commit()
    await db.refresh(monitor)

    return _to_response(monitor)


@router.get("/{monitor_id}/pings", response_model=PingsPage)
async def list_pings(
    monitor_id: int,
    page: int = Query(default=1, ge=1),
    per_page: int = Query(default=25, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """Get paginated ping history for a monitor, newest first."""
    await _get_monitor_or_404(db, monitor_id)

    count_result = await db.execute(
        select(func.count(Ping.id)).where(Ping.monitor_id == monitor_id)
    )
    total = count_result.scalar() or 0

    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    offset = (page - 1) * per_page

    result = await db.execute(
        select(Ping)
        .where(Ping.monitor_id == monitor_id)
        .order_by(Ping.received_at.desc(), Ping.id.desc())
        .offset(offset)
        .limit(per_page)
    )

    return PingsPage(
        items=[PingRecord.model_validate(p) for p in result.scalars().all()],
        total=total,
        page=page,
        per_page=per_page,
        total_pages=total_pages,
    )


@router.get("/{monitor_id}/incidents", response_model=List[IncidentResponse])
async def list_incidents(
    monitor_id: int,
    limit: int = Query(default=50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """Get incidents for a monitor, newest first."""
    await _get_monitor_or_404(db, monitor_id)

    result = await db.execute(
        select(Incident)
        .where(Incident.monitor_id == monitor_id)
        .order_by(Incident.started_at.desc(), Incident.id.desc())
        .limit(limit)
    )

    return [
        IncidentResponse(
            id=incident.id,
            monitor_id=incident.monitor_id,
            started_at=incident.started_at,
            resolved_at=incident.resolved_at,
            alerts_sent=incident.alerts_sent or {},
            duration_seconds=(
                int((incident.resolved_at - incident.started_at).total_seconds())
                if incident.resolved_at else None
            ),
        )
        for incident in result.scalars().all()
    ]


RECENT_INCIDENTS = 10
RECENT_PINGS = 20


@router.get("/{monitor_id}/analytics", response_model=MonitorAnalytics)
async def get_monitor_analytics(monitor_id: int, db: AsyncSession = Depends(get_db)):
    """Uptime over rolling windows, incident statistics and recent pings.

    Uptime comes from incident history: time inside a (merged) incident is
    down, everything else since the monitor was created is up.
    """
    monitor = await _get_monitor_or_404(db, monitor_id)
    now = utcnow()

    result = await db.execute(
        select(Incident)
        .where(Incident.monitor_id == monitor_id)
        .order_by(Incident.started_at.desc(), Incident.id.desc())
    )
    incidents = result.scalars().all()

    count_result = await db.execute(
        select(func.count(Ping.id)).where(Ping.monitor_id == monitor_id)
    )
    pings_result = await db.execute(
        select(Ping)
        .where(Ping.monitor_id == monitor_id)
        .order_by(Ping.received_at.desc(), Ping.id.desc())
        .limit(RECENT_PINGS)
    )

    uptime = uptime_by_window(incidents, monitor.created_at, now)
    total_downtime, average_duration = incident_totals(incidents, now)

    return MonitorAnalytics(
        monitor_id=monitor.id,
        uptime={
            name: UptimeWindow(uptime_percent=s.uptime_percent, downtime_seconds=s.downtime_seconds)
            for name, s in uptime.items()
        },
        incidents=IncidentStats(
            total=len(incidents),
            total_downtime_seconds=total_downtime,
            average_duration_seconds=round(average_duration, 1),
            recent=[
                IncidentBrief(
                    id=i.id,
                    started_at=i.started_at,
                    resolved_at=i.resolved_at,
                    duration_seconds=incident_duration_seconds(i, now),
                )
                for i in incidents[:RECENT_INCIDENTS]
            ],
        ),
        pings=PingStats(
            total=count_result.scalar() or 0,
            recent=[
                PingBrief(received_at=p.received_at, kind=p.kind, ip_address=p.ip_address)
                for p in pings_result.scalars().all()
            ],
        ),
        current_status=CurrentStatus(
            status=monitor.status,
            last_ping_at=monitor.last_ping_at,
            next_expected_at=monitor.next_expected_at,
        ),
    )
