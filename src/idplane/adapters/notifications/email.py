"""SMTP email notification adapter."""

import asyncio
import smtplib
from dataclasses import dataclass
from email.mime.text import MIMEText

import structlog

from idplane.core.exceptions import NotificationError

logger = structlog.get_logger()


@dataclass
class EmailConfig:
    """Email configuration."""

    smtp_host: str
    smtp_port: int = 587
    smtp_user: str | None = None
    smtp_password: str | None = None
    from_email: str = "no-reply@example.com"
    from_name: str = "idplane"
    use_tls: bool = True


class SmtpEmailNotifier:
    """Delivers plain text emails over SMTP."""

    def __init__(self, config: EmailConfig):
        """Initialize the email notifier.

        Args:
            config: Email configuration settings.
        """
        self.config = config

    async def send_email(self, to: str, subject: str, body: str) -> None:
        """Send an email without blocking the event loop.

        Raises:
            NotificationError: If the SMTP exchange failed.
        """
        await asyncio.to_thread(self._send, to, subject, body)

    def _send(self, to: str, subject: str, body: str) -> None:
        msg = MIMEText(body, "plain")
        msg["Subject"] = subject
        msg["From"] = f"{self.config.from_name} <{self.config.from_email}>"
        msg["To"] = to

        try:
            with smtplib.SMTP(self.config.smtp_host, self.config.smtp_port) as server:
                if self.config.use_tls:
                    server.starttls()

                if self.config.smtp_user and self.config.smtp_password:
                    server.login(self.config.smtp_user, self.config.smtp_password)

                server.sendmail(self.config.from_email, [to], msg.as_string())
        except (smtplib.SMTPException, OSError) as e:
            logger.error("email_error", subject=subject, error=str(e))
            raise NotificationError(f"SMTP delivery failed: {e}") from e

        logger.info("email_sent", subject=subject)
