"""
core/email.py -- Outbound email for password-reset and verification links.

Uses stdlib smtplib. One SMTP connection per message: these emails are rare
(a few per user lifetime), so pooling would only add failure modes.

When SMTP_HOST is empty the service runs in log-only mode: it records that a
message would have been sent (recipient and subject, never the body, which
carries a live token) and returns. This keeps local development and tests
free of mail infrastructure.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from urllib.parse import urlencode

from core.config import Settings

logger = logging.getLogger("tokengate.email")


class EmailService:
    """Send transactional email through the configured SMTP relay.

    Usage:
        mailer = EmailService(get_settings())
        mailer.send_reset_password_email("ada@example.com", raw_token)
    """

    def __init__(self, settings: Settings) -> None:
        self._host = settings.smtp_host
        self._port = settings.smtp_port
        self._username = settings.smtp_username
        self._password = settings.smtp_password
        self._sender = settings.email_from
        self._base_url = settings.app_base_url.rstrip("/")

    @property
    def enabled(self) -> bool:
        return bool(self._host)

    def send_email(self, to: str, subject: str, text: str) -> None:
        """Send a plain-text message. Raises smtplib.SMTPException on relay errors."""
        if not self.enabled:
            logger.info("Email delivery disabled; dropping %r to %s", subject, to)
            return
        message = EmailMessage()
        message["From"] = self._sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(text)
        with smtplib.SMTP(host=self._host, port=self._port) as conn:
            conn.starttls()
            if self._username:
                conn.login(self._username, self._password)
            conn.send_message(message)
        logger.info("Sent %r to %s", subject, to)

    def send_reset_password_email(self, to: str, token: str) -> None:
        url = f"{self._base_url}/reset-password?{urlencode({'token': token})}"
        text = (
            "Dear user,\n"
            f"To reset your password, click on this link: {url}\n"
            "If you did not request any password resets, then ignore this email."
        )
        self.send_email(to, "Reset password", text)

    def send_verification_email(self, to: str, token: str) -> None:
        url = f"{self._base_url}/verify-email?{urlencode({'token': token})}"
        text = (
            "Dear user,\n"
            f"To verify your email, click on this link: {url}\n"
            "If you did not create an account, then ignore this email."
        )
        self.send_email(to, "Email Verification", text)
