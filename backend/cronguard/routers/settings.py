"""Runtime settings API: alert behaviour, ping rate limit, retention and SMTP."""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models import Setting
from ..models.settings import get_all_settings, bool_from_str
from ..schemas.settings import SettingsResponse, SettingsUpdate, EmailTestRequest
from ..services.email_sender import email_sender_service, EmailConfig
from ..utils.db_utils import utcnow

router = APIRouter(prefix="/api/settings", tags=["settings"])


def _encode(value) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value)


def _decode(stored: dict) -> SettingsResponse:
    """Convert the string-valued settings table into typed response fields."""
    values = {}
    for name, field in SettingsResponse.model_fields.items():
        raw = stored.get(name)
        if raw is None or raw == "":
            continue
        if field.annotation is bool:
            values[name] = bool_from_str(raw)
        elif field.annotation is int:
            values[name] = int(raw)
        else:
            values[name] = raw
    return SettingsResponse(**values)


@router.get("", response_model=SettingsResponse)
async def get_settings(db: AsyncSession = Depends(get_db)):
    return _decode(await get_all_settings(db))


@router.put("", response_model=SettingsResponse)
async def update_settings(changes: SettingsUpdate, db: AsyncSession = Depends(get_db)):
    """Store the given settings. Omitted or null fields keep their value."""
    for key, value in changes.model_dump(exclude_none=True).items():
        row = await db.get(Setting, key)
        if row is None:
            db.add(Setting(key=key, value=_encode(value)))
        else:
            row.value = _encode(value)

    await db.commit()
    return _decode(await get_all_settings(db))


@router.post("/test-email")
async def send_test_email(request: EmailTestRequest, db: AsyncSession = Depends(get_db)):
    """Send a test message with the stored SMTP settings."""
    stored = await get_all_settings(db)

    if not bool_from_str(stored.get("email_alerts_enabled", "0")):
        raise HTTPException(status_code=400, detail="Email alerts are not enabled")
    if not stored.get("smtp_host"):
        raise HTTPException(status_code=400, detail="SMTP host is not configured")

    config = EmailConfig.from_settings(stored, request.to)
    body = "\n".join([
        "CronGuard test email",
        "",
        "Your SMTP settings work: alert emails for DOWN and recovered monitors will use them.",
        "",
        f"Server: {config.host}:{config.port} (STARTTLS {'on' if config.use_tls else 'off'})",
        f"Sender: {config.sender or 'not set'}",
        f"Sent at: {utcnow().strftime('%Y-%m-%d %H:%M:%S UTC')}",
    ])

    if not await email_sender_service.send_email(config, "CronGuard test email", body):
        raise HTTPException(status_code=500, detail="Test email could not be delivered, see server logs")
    return {"success": True, "message": f"Test email sent to {request.to}"}
