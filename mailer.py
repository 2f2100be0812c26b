import logging
import smtplib
from email.message import EmailMessage
from typing import Optional, Protocol

from config import Settings, get_settings

logger = logging.getLogger(__name__)


class EmailDeliveryError(Exception):
    pass


class EmailSender(Protocol):
    def __call__(self, to: str, subject: str, text: str) -> None: ...


class SmtpSender:
    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()

    def is_configured(self) -> bool:
        s = self.settings
        return all((s.smtp_host, s.smtp_port, s.smtp_user, s.smtp_password, s.smtp_from))

    def __call__(self, to: str, subject: str, text: str) -> None:
        if not self.is_configured():
            raise EmailDeliveryError(
                "Email is not configured. Set LEDGER_SMTP_HOST, LEDGER_SMTP_PORT, "
                "LEDGER_SMTP_USER, LEDGER_SMTP_PASSWORD, LEDGER_SMTP_FROM."
            )
        s = self.settings
        message = EmailMessage()
        message["From"] = s.smtp_from
        message["To"] = to
        message["Subject"] = subject
        message.set_content(text)

        smtp_cls = smtplib.SMTP_SSL if s.smtp_secure else smtplib.SMTP
        try:
            with smtp_cls(s.smtp_host, s.smtp_port, timeout=30) as smtp:
                if not s.smtp_secure:
                    smtp.starttls()
                smtp.login(s.smtp_user, s.smtp_password)
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.warning(f"email_send_failed: to={to} error={exc}")
            raise EmailDeliveryError(str(exc) or "Failed to send") from exc
