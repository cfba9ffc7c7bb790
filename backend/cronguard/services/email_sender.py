"""SMTP delivery for alert and test emails."""
import asyncio
import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.message import EmailMessage
from typing import List

from ..models.settings import bool_from_str

logger = logging.getLogger(__name__)

SMTP_TIMEOUT_SECONDS = 30


@dataclass
class EmailConfig:
    """Where and how to deliver one message."""
    host: str
    port: int
    username: str
    password: str
    use_tls: bool = True
    from_address: str = ""
    to_address: str = ""  # may hold several addresses, comma separated

    @classmethod
    def from_settings(cls, stored: dict, to_address: str) -> "EmailConfig":
        """Build from the settings table (see models.settings.DEFAULT_SETTINGS)."""
        return cls(
            host=stored.get("smtp_host", ""),
            port=int(stored.get("smtp_port", 587)),
            username=stored.get("smtp_username", ""),
            password=stored.get("smtp_password", ""),
            use_tls=bool_from_str(stored.get("smtp_use_tls", "1")),
            from_address=stored.get("alert_email_from", ""),
            to_address=to_address,
        )

    @property
    def sender(self) -> str:
        return self.from_address or self.username

    @property
    def recipients(self) -> List[str]:
        return [part.strip() for part in (self.to_address or "").split(",") if part.strip()]


class EmailSenderService:
    """Sends plain-text mail. Never raises; delivery failures return False."""

    def _compose(self, config: EmailConfig, subject: str, body: str) -> EmailMessage:
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = config.sender
        message["To"] = ", ".join(config.recipients)
        message.set_content(body)
        return message

    def _deliver(self, config: EmailConfig, message: EmailMessage):
        with smtplib.SMTP(config.host, config.port, timeout=SMTP_TIMEOUT_SECONDS) as smtp:
            if config.use_tls:
                smtp.starttls(context=ssl.create_default_context())
            if config.username and config.password:
                smtp.login(config.username, config.password)
            smtp.send_message(message, from_addr=config.sender, to_addrs=config.recipients)

    async def send_email(self, config: EmailConfig, subject: str, body: str) -> bool:
        """Deliver one message over SMTP (STARTTLS when use_tls is set)."""
        if not config.host:
            logger.warning("SMTP host not configured, email not sent")
            return False
        if not config.recipients:
            logger.warning("No recipients given, email not sent")
            return False

        message = self._compose(config, subject, body)
        try:
            # smtplib blocks; keep it off the event loop
            await asyncio.to_thread(self._deliver, config, message)
        except smtplib.SMTPAuthenticationError as e:
            logger.error(f"SMTP login rejected for '{config.username}': {e}")
            return False
        except smtplib.SMTPException as e:
            logger.error(f"SMTP delivery failed: {type(e).__name__}: {e}")
            return False
        except OSError as e:
            logger.error(f"Could not reach SMTP server {config.host}:{config.port}: {e}")
            return False

        logger.info(f"Sent '{subject}' to {len(config.recipients)} recipient(s)")
        return True


# Global instance
email_sender_service = EmailSenderService()
