"""Public status page and SVG badges for monitors that opt in.

No authentication. A monitor shows up here only with status_page_enabled set;
otherwise the status page is a 404 and badges read "private".
"""
from datetime import timedelta
from html import escape
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import Monitor, Incident
from ..schemas.analytics import IncidentBrief, PublicMonitor, PublicStatus, UptimeWindow
from ..services.analytics import incident_duration_seconds, uptime_by_window, uptime_stats, window_start
from ..utils.db_utils import utcnow

router = APIRouter(prefix="/api", tags=["public"])

PUBLIC_WINDOWS = {"last_30d": timedelta(days=30), "last_90d": timedelta(days=90)}
RECENT_INCIDENTS = 10

NEUTRAL_COLOR = "#9ca3af"
STATUS_COLORS = {
    "HEALTHY": "#10b981",
    "LATE": "#eab308",
    "DOWN": "#ef4444",
    "PAUSED": "#6b7280",
    "PENDING": "#3b82f6",
    "RUNNING": "#3b82f6",
}

BADGE_TEMPLATE = """<svg xmlns="http://www.w3.org/2000/svg" width="{total}" height="20">
  <linearGradient id="b" x2="0" y2="100%">
    <stop offset="0" stop-color="#bbb" stop-opacity=".1"/>
    <stop offset="1" stop-opacity=".1"/>
  </linearGradient>
  <mask id="a">
    <rect width="{total}" height="20" rx="{radius}" fill="#fff"/>
  </mask>
  <g mask="url(#a)">
    <path fill="#555" d="M0 0h{label_width}v20H0z"/>
    <path fill="{color}" d="M{label_width} 0h{message_width}v20H{label_width}z"/>
    <path fill="url(#b)" d="M0 0h{total}v20H0z"/>
  </g>
  <g fill="#fff" text-anchor="middle" font-family="DejaVu Sans,Verdana,Geneva,sans-serif" font-size="11">
    <text x="{label_x}" y="14" fill="#010101" fill-opacity=".3">{label}</text>
    <text x="{label_x}" y="13">{label}</text>
    <text x="{message_x}" y="14" fill="#010101" fill-opacity=".3">{message}</text>
    <text x="{message_x}" y="13">{message}</text>
  </g>
</svg>"""

BadgeStyle = Literal["flat", "flat-square"]


def uptime_color(percent: float) -> str:
    if percent >= 99.9:
        return "#10b981"
    if percent >= 99.0:
        return "#eab308"
    if percent >= 95.0:
        return "#f97316"
    return "#ef4444"


def render_badge(label: str, message: str, color: str, style: str = "flat") -> str:
    # Roughly 7px per character at 11px
    label_width = len(label) * 7 + 20
    message_width = len(message) * 7 + 20
    return BADGE_TEMPLATE.format(
        total=label_width + message_width,
        radius=0 if style == "flat-square" else 3,
        label_width=label_width,
        message_width=message_width,
        label_x=label_width / 2,
        message_x=label_width + message_width / 2,
        color=color,
        label=escape(label),
        message=escape(message),
    )


def _badge_response(label: str, message: str, color: str, style: str) -> Response:
    return Response(
        content=render_badge(label, message, color, style),
        media_type="image/svg+xml",
        headers={"Cache-Control": "public, max-age=60"},
    )


async def _find_by_slug(db: AsyncSession, slug: str) -> Optional[Monitor]:
    result = await db.execute(select(Monitor).where(Monitor.slug == slug))
    return result.scalar_one_or_none()


async def _incidents_since(db: AsyncSession, monitor_id: int, since):
    """Incidents still open or resolved after `since`, newest first."""
    result = await db.execute(
        select(Incident)
        .where(
            Incident.monitor_id == monitor_id,
            or_(Incident.resolved_at.is_(None), Incident.resolved_at >= since),
        )
        .order_by(Incident.started_at.desc(), Incident.id.desc())
    )
    return result.scalars().all()


@router.get("/status/{slug}", response_model=PublicStatus)
async def get_public_status(slug: str, db: AsyncSession = Depends(get_db)):
    """Public status of one monitor: current state, 30/90 day uptime, recent incidents."""
    monitor = await _find_by_slug(db, slug)
    if monitor is None or not monitor.status_page_enabled:
        raise HTTPException(status_code=404, detail="Status page not found")

    now = utcnow()
    incidents = await _incidents_since(db, monitor.id, now - PUBLIC_WINDOWS["last_90d"])
    uptime = uptime_by_window(incidents, monitor.created_at, now, PUBLIC_WINDOWS, all_time=False)
    recent_cutoff = now - PUBLIC_WINDOWS["last_30d"]

    return PublicStatus(
        monitor=PublicMonitor(
            name=monitor.name,
            status=monitor.status,
            last_ping_at=monitor.last_ping_at,
            created_at=monitor.created_at,
        ),
        uptime={
            name: UptimeWindow(uptime_percent=s.uptime_percent, downtime_seconds=s.downtime_seconds)
            for name, s in uptime.items()
        },
        recent_incidents=[
            IncidentBrief(
                id=i.id,
                started_at=i.started_at,
                resolved_at=i.resolved_at,
                duration_seconds=incident_duration_seconds(i, now),
            )
            for i in incidents
            if i.started_at >= recent_cutoff
        ][:RECENT_INCIDENTS],
    )


@router.get("/badge/{slug}")
async def status_badge(slug: str, style: BadgeStyle = Query(default="flat"), db: AsyncSession = Depends(get_db)):
    """SVG badge showing the monitor's current status."""
    monitor = await _find_by_slug(db, slug)
    if monitor is None:
        return _badge_response("monitor", "not found", NEUTRAL_COLOR, style)
    if not monitor.status_page_enabled:
        return _badge_response("monitor", "private", NEUTRAL_COLOR, style)

    color = STATUS_COLORS.get(monitor.status, NEUTRAL_COLOR)
    return _badge_response("status", monitor.status.lower(), color, style)


@router.get("/badge/{slug}/uptime")
async def uptime_badge(
    slug: str,
    period: Literal["30d", "90d"] = Query(default="30d"),
    style: BadgeStyle = Query(default="flat"),
    db: AsyncSession = Depends(get_db),
):
    """SVG badge showing uptime over the last 30 or 90 days."""
    monitor = await _find_by_slug(db, slug)
    if monitor is None:
        return _badge_response("uptime", "not found", NEUTRAL_COLOR, style)
    if not monitor.status_page_enabled:
        return _badge_response("uptime", "private", NEUTRAL_COLOR, style)

    now = utcnow()
    window = PUBLIC_WINDOWS["last_90d" if period == "90d" else "last_30d"]
    start = window_start(monitor.created_at, now, window)
    stats = uptime_stats(await _incidents_since(db, monitor.id, start), start, now)

    return _badge_response("uptime", f"{stats.uptime_percent:.2f}%", uptime_color(stats.uptime_percent), style)
