"""Status overview API for dashboard, plus the on-demand sweep trigger."""
from fastapi import APIRouter, Depends
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import Monitor, MonitorState, Incident
from ..schemas.status import StatusOverview, MonitorSummary, SweepResponse
from ..services.sweeper import liveness_sweeper

router = APIRouter(prefix="/api", tags=["status"])


@router.get("/status/overview", response_model=StatusOverview)
async def get_status_overview(db: AsyncSession = Depends(get_db)):
    """Get dashboard overview data for all active monitors."""
    result = await db.execute(
        select(Monitor)
        .where(Monitor.archived.is_(False))
        .order_by(Monitor.name)
    )
    monitors = result.scalars().all()

    by_status = {state.value: 0 for state in MonitorState}
    for monitor in monitors:
        by_status[monitor.status] = by_status.get(monitor.status, 0) + 1

    open_result = await db.execute(
        select(func.count(Incident.id))
        .join(Monitor, Monitor.id == Incident.monitor_id)
        .where(Incident.resolved_at.is_(None), Monitor.archived.is_(False))
    )

    return StatusOverview(
        total_monitors=len(monitors),
        by_status=by_status,
        open_incidents=open_result.scalar() or 0,
        monitors=[
            MonitorSummary(
                id=m.id,
                name=m.name,
                slug=m.slug,
                status=m.status,
                last_ping_at=m.last_ping_at,
                next_expected_at=m.next_expected_at,
            )
            for m in monitors
        ],
    )


@router.post("/sweep", response_model=SweepResponse)
async def run_sweep():
    """Run one liveness sweep now (for deployments driven by an external cron)."""
    summary = await liveness_sweeper.sweep()
    return SweepResponse(
        checked=summary.checked,
        late=summary.late,
        down=summary.down,
        incidents_opened=summary.incidents_opened,
        errors=summary.errors,
    )
