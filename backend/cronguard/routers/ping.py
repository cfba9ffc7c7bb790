"""Public ping endpoints.

No authentication: possession of the slug authorizes the ping. GET is
accepted alongside POST so a bare `curl` or `wget` from a crontab works.
"""
import logging

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import PingKind
from ..models.settings import get_all_settings, bool_from_str
from ..services.ingestor import ping_ingestor, MonitorNotFound, PingSource
from ..services.rate_limiter import rate_limiter
from ..services.recovery import handle_recovery
from ..utils.db_utils import isoformat_z, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ping", tags=["ping"])

RATE_LIMIT_WINDOW_SECONDS = 60


def client_ip(request: Request):
    """First hop of X-Forwarded-For, then X-Real-IP, then the socket peer."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return request.client.host if request.client else None


def _rate_limited_response(decision) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={
            "error": "Rate limit exceeded",
            "message": f"Too many pings for this monitor. Maximum {decision.limit} pings per minute allowed.",
            "retryAfter": decision.retry_after,
        },
        headers={
            "Retry-After": str(decision.retry_after),
            "X-RateLimit-Limit": str(decision.limit),
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": isoformat_z(decision.reset_at),
        },
    )


async def _handle_ping(
    slug: str,
    kind: PingKind,
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession,
):
    stored = await get_all_settings(db)

    limit = int(stored.get("ping_rate_limit_per_minute", 10))
    decision = await rate_limiter.hit(f"ping:{slug}", limit, RATE_LIMIT_WINDOW_SECONDS)
    if not decision.allowed:
        return _rate_limited_response(decision)

    source = PingSource(
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    now = utcnow()

    try:
        outcome = await ping_ingestor.ingest(slug, kind, source, now=now)
    except MonitorNotFound:
        raise HTTPException(status_code=404, detail="Monitor not found")

    if outcome.status == "paused":
        return {"status": "paused"}

    if outcome.status == "running":
        return {"status": "running", "startedAt": isoformat_z(outcome.started_at)}

    if outcome.recovered and bool_from_str(stored.get("resolve_incidents_on_recovery", "1")):
        background_tasks.add_task(
            handle_recovery,
            outcome.monitor_id,
            now,
            bool_from_str(stored.get("alert_on_recovery", "1")),
        )

    return {"status": "ok", "next": isoformat_z(outcome.next_expected_at)}


@router.api_route("/{slug}", methods=["GET", "POST"])
async def ping(
    slug: str,
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
):
    """Heartbeat: the job completed."""
    return await _handle_ping(slug, PingKind.HEARTBEAT, request, background_tasks, db)


@router.api_route("/{slug}/start", methods=["GET", "POST"])
async def ping_start(
    slug: str,
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
):
    """Start signal: the job began running."""
    return await _handle_ping(slug, PingKind.START, request, background_tasks, db)
