"""E-mail copies of in-app notifications."""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage

from sacco_api.core.config import settings

logger = logging.getLogger(__name__)

SUBJECT_PREFIX = "[SACCO]"


def build_message(*, subject: str, body: str, recipients: list[str]) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = f"{SUBJECT_PREFIX} {subject}"
    msg["From"] = settings.smtp_from or ""
    msg["To"] = ", ".join(sorted(set(recipients)))
    msg.set_content(f"{body}\n\nThis is an automated message from {settings.app_name}.")
    return msg


def send_email(*, subject: str, body: str, recipients: list[str]) -> bool:
    """
    Send one message to all `recipients`. Returns False when nothing went out.

    Without SMTP settings the message is only logged.
    """
    if not recipients:
        return False

    msg = build_message(subject=subject, body=body, recipients=recipients)
    if not settings.smtp_host or not settings.smtp_from:
        logger.info("email not sent (SMTP not configured): to=%s subject=%r", msg["To"], msg["Subject"])
        return False

    with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=settings.smtp_timeout_seconds) as smtp:
        smtp.starttls()
        if settings.smtp_username and settings.smtp_password:
            smtp.login(settings.smtp_username, settings.smtp_password)
        smtp.send_message(msg)
    logger.info("email sent: to=%s subject=%r", msg["To"], msg["Subject"])
    return True
