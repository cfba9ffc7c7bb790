"""Alerter service - sends webhook and email notifications for monitor incidents."""
import json
import logging
from datetime import datetime
from typing import Dict, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings as app_settings
from ..models import Monitor, Alert
from ..models.settings import get_all_settings, bool_from_str
from ..utils.db_utils import utcnow, isoformat_z
from .email_sender import email_sender_service, EmailConfig

logger = logging.getLogger(__name__)

EVENT_DOWN = "down"
EVENT_RECOVERY = "recovery"

SLACK_COLORS = {
    EVENT_DOWN: "#dc2626",
    EVENT_RECOVERY: "#10b981",
}


def _format_time(value: Optional[datetime]) -> str:
    if value is None:
        return "Never"
    return value.strftime("%Y-%m-%d %H:%M:%S UTC")


def _format_duration(minutes: int) -> str:
    hours, mins = divmod(minutes, 60)
    return f"{hours}h {mins}m" if hours > 0 else f"{mins}m"


def is_slack_webhook(url: str) -> bool:
    return "hooks.slack.com" in url


class AlerterService:
    """Delivers down/recovery alerts to a monitor's email and webhook targets.

    Delivery is best-effort: every attempt is logged to the alerts table and
    reported back as a channel -> success map, but failures never raise.
    """

    def _monitor_url(self, monitor: Monitor) -> str:
        return f"{app_settings.public_base_url.rstrip('/')}/dashboard/monitors/{monitor.id}"

    def _build_details(
        self,
        monitor: Monitor,
        event: str,
        now: datetime,
        started_at: Optional[datetime] = None,
    ) -> dict:
        details = {
            "lastPingAt": isoformat_z(monitor.last_ping_at) if monitor.last_ping_at else None,
            "currentTime": isoformat_z(now),
        }
        if event == EVENT_DOWN and monitor.next_expected_at:
            details["expectedBy"] = isoformat_z(monitor.next_expected_at)
        if event == EVENT_RECOVERY and started_at:
            details["wentDownAt"] = isoformat_z(started_at)
            details["recoveredAt"] = isoformat_z(now)
            details["downtimeMinutes"] = int((now - started_at).total_seconds() // 60)
        return details

    def build_email_subject(self, monitor: Monitor, event: str) -> str:
        if event == EVENT_DOWN:
            return f"Monitor Down: {monitor.name}"
        return f"Monitor Recovered: {monitor.name}"

    def build_email_body(self, monitor: Monitor, event: str, details: dict) -> str:
        """Build a plain-text email body."""
        if event == EVENT_DOWN:
            headline = f"Your monitor {monitor.name} has not checked in and is now marked as DOWN."
        else:
            headline = f"Your monitor {monitor.name} has recovered and is now HEALTHY."

        lines = [
            f"CronGuard {event.upper()} Report",
            "=" * 40,
            "",
            headline,
            "",
            f"Monitor: {monitor.name}",
            f"Ping URL slug: {monitor.slug}",
            f"Last ping: {_format_time(monitor.last_ping_at)}",
        ]
        if event == EVENT_DOWN:
            lines.append(f"Expected by: {_format_time(monitor.next_expected_at)}")
            lines.append("")
            lines.append("Please check your cron job immediately.")
        elif "downtimeMinutes" in details:
            lines.append(f"Downtime: {_format_duration(details['downtimeMinutes'])}")
        lines.extend([
            "",
            f"View monitor: {self._monitor_url(monitor)}",
            "",
            "--",
            "CronGuard Monitoring",
        ])
        return "\n".join(lines)

    def build_webhook_payload(self, monitor: Monitor, event: str, details: dict, now: datetime) -> dict:
        """Build the JSON body for a webhook target (Slack or generic)."""
        if monitor.alert_webhook and is_slack_webhook(monitor.alert_webhook):
            text = (
                f"Monitor *{monitor.name}* is DOWN"
                if event == EVENT_DOWN
                else f"Monitor *{monitor.name}* has recovered"
            )
            fields = []
            if details.get("lastPingAt"):
                fields.append({"title": "Last Ping", "value": details["lastPingAt"], "short": True})
            if details.get("expectedBy"):
                fields.append({"title": "Expected By", "value": details["expectedBy"], "short": True})
            if "downtimeMinutes" in details:
                fields.append({
                    "title": "Downtime",
                    "value": _format_duration(details["downtimeMinutes"]),
                    "short": True,
                })
            return {
                "text": text,
                "attachments": [{
                    "color": SLACK_COLORS[event],
                    "fields": fields,
                    "footer": "CronGuard",
                    "ts": int((now - datetime(1970, 1, 1)).total_seconds()),
                    "actions": [{"type": "button", "text": "View Monitor", "url": self._monitor_url(monitor)}],
                }],
            }

        return {
            "monitorId": monitor.id,
            "monitor": monitor.name,
            "slug": monitor.slug,
            "event": event,
            "timestamp": isoformat_z(now),
            "details": details,
        }

    async def dispatch_down(
        self,
        session: AsyncSession,
        monitor: Monitor,
        incident_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, bool]:
        """Send the DOWN alert. Returns channel -> delivered."""
        now = now or utcnow()
        details = self._build_details(monitor, EVENT_DOWN, now)
        return await self._dispatch(session, monitor, EVENT_DOWN, details, incident_id, now)

    async def dispatch_recovery(
        self,
        session: AsyncSession,
        monitor: Monitor,
        incident_id: Optional[int] = None,
        started_at: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> Dict[str, bool]:
        """Send the recovery alert. Returns channel -> delivered."""
        now = now or utcnow()
        details = self._build_details(monitor, EVENT_RECOVERY, now, started_at)
        return await self._dispatch(session, monitor, EVENT_RECOVERY, details, incident_id, now)

    async def _dispatch(
        self,
        session: AsyncSession,
        monitor: Monitor,
        event: str,
        details: dict,
        incident_id: Optional[int],
        now: datetime,
    ) -> Dict[str, bool]:
        results: Dict[str, bool] = {}

        if monitor.alert_email:
            stored = await get_all_settings(session)
            if bool_from_str(stored.get("email_alerts_enabled", "0")):
                results["email"] = await self._send_email_alert(
                    session, monitor, event, details, stored, incident_id, now
                )
            else:
                logger.debug(f"Email alerts disabled, skipping email for {monitor.name}")

        if monitor.alert_webhook:
            results["webhook"] = await self._send_webhook_alert(
                session, monitor, event, details, incident_id, now
            )

        if not results:
            logger.info(f"Monitor {monitor.name} is {event.upper()} - no alert targets configured")
        return results

    async def _send_email_alert(
        self,
        session: AsyncSession,
        monitor: Monitor,
        event: str,
        details: dict,
        stored: dict,
        incident_id: Optional[int],
        now: datetime,
    ) -> bool:
        """Send an email alert and record the attempt."""
        subject = self.build_email_subject(monitor, event)
        body = self.build_email_body(monitor, event, details)

        config = EmailConfig.from_settings(stored, monitor.alert_email)

        try:
            success = await email_sender_service.send_email(config, subject, body)
        except Exception as e:
            logger.error(f"Email alert failed for {monitor.name}: {type(e).__name__}: {e}")
            success = False

        session.add(Alert(
            monitor_id=monitor.id,
            incident_id=incident_id,
            alert_type=event,
            channel="email",
            sent_at=now,
            payload=json.dumps({"subject": subject, "to": monitor.alert_email}),
            success=success,
        ))
        return success

    async def _send_webhook_alert(
        self,
        session: AsyncSession,
        monitor: Monitor,
        event: str,
        details: dict,
        incident_id: Optional[int],
        now: datetime,
    ) -> bool:
        """Send a webhook alert and record the attempt."""
        payload = self.build_webhook_payload(monitor, event, details, now)
        success = await self._send_webhook(monitor.alert_webhook, payload)

        session.add(Alert(
            monitor_id=monitor.id,
            incident_id=incident_id,
            alert_type=event,
            channel="webhook",
            sent_at=now,
            payload=json.dumps(payload),
            success=success,
        ))
        return success

    async def _send_webhook(self, url: str, payload: dict) -> bool:
        """Send a webhook POST request."""
        try:
            async with httpx.AsyncClient(timeout=10) as client:
                response = await client.post(
                    url,
                    json=payload,
                    headers={"Content-Type": "application/json"},
                )
                if response.status_code < 400:
                    logger.info(f"Webhook sent to {url}")
                    return True
                logger.warning(f"Webhook returned {response.status_code}")
                return False
        except httpx.HTTPError as e:
            logger.error(f"Failed to send webhook: {e}")
            return False


# Global instance
alerter_service = AlerterService()
