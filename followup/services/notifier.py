"""Email delivery over SMTP.

``deliver`` reports failure by returning False; callers decide what a failed
delivery means. It never touches ledger state.
"""
from __future__ import annotations

import logging
import smtplib
from decimal import Decimal
from email.mime.text import MIMEText
from typing import Protocol

from followup.core.config import settings

logger = logging.getLogger(__name__)

FOLLOWUP_SUBJECTS = {
    "sk": "Váš follow-up email je pripravený",
    "en": "Your follow-up email is ready",
    "cs": "Váš follow-up email je připraven",
    "de": "Ihre Follow-up-E-Mail ist fertig",
    "pl": "Twój follow-up email jest gotowy",
    "hu": "A follow-up emailje kész",
    "es": "Tu correo de seguimiento está listo",
}

PACKAGE_NAMES = {"starter": "Starter", "business": "Business", "pro": "Pro"}


class Notifier(Protocol):
    def deliver(self, address: str, subject: str, body: str) -> bool: ...


def followup_subject(language: str, client_name: str | None = None) -> str:
    subject = FOLLOWUP_SUBJECTS.get(language, FOLLOWUP_SUBJECTS["en"])
    return f"{subject} ({client_name})" if client_name else subject


def purchase_confirmation_body(
    name: str | None,
    credits: int,
    package_type: str,
    amount: Decimal,
    new_balance: int,
) -> str:
    greeting = f"Thank you for your purchase, {name}!" if name else "Thank you for your purchase!"
    return (
        f"{greeting}\n\n"
        f"Package: {PACKAGE_NAMES.get(package_type, package_type)}\n"
        f"Credits: {credits} follow-ups\n"
        f"Amount: {Decimal(amount):.2f} EUR\n"
        f"Total balance: {new_balance} credits\n\n"
        f"Create your next follow-up: {settings.FRONTEND_URL.rstrip('/')}/#start\n"
    )


class EmailNotifier:
    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        user: str | None = None,
        password: str | None = None,
        from_email: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self.host = host or settings.SMTP_HOST
        self.port = port or settings.SMTP_PORT
        self.user = user or settings.SMTP_USER
        self.password = password or settings.SMTP_PASSWORD
        self.from_email = from_email or settings.FROM_EMAIL
        self.timeout = timeout or settings.SMTP_TIMEOUT

    def deliver(self, address: str, subject: str, body: str) -> bool:
        if not self.host:
            logger.warning("No email provider configured; dropping message to %s", address)
            return False

        msg = MIMEText(body, "plain", "utf-8")
        msg["From"] = self.from_email
        msg["To"] = address
        msg["Subject"] = subject
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                server.starttls()
                if self.user and self.password:
                    server.login(self.user, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("Failed to send email to %s: %s", address, exc)
            return False
        logger.info("Email sent to %s (%s)", address, subject)
        return True
