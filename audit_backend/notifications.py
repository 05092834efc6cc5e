# audit_backend/notifications.py
"""
Email notifications sent after an audit request is stored.

The mailer is chosen once at startup by build_mailer():
- SmtpMailer     — aiosmtplib, used when EMAIL_HOST/EMAIL_USER/EMAIL_PASSWORD are set
- DisabledMailer — drops every message; used when credentials are missing

NotificationDispatcher.dispatch() is scheduled as a background task. It sends
the submitter confirmation and the admin alert concurrently, logs each
failure and never raises.
"""

import asyncio
import html
from email.message import EmailMessage
from typing import Optional

import aiosmtplib

from audit_backend import config
from audit_backend import monitoring
from audit_backend.schemas import AuditRequest

CONFIRMATION_SUBJECT = "Digital Audit Request Received - PARALLAX"


class Mailer:
    enabled = True

    async def send(self, to: str, subject: str, html_body: str) -> None:
        raise NotImplementedError


class DisabledMailer(Mailer):
    enabled = False

    async def send(self, to: str, subject: str, html_body: str) -> None:
        return None


class SmtpMailer(Mailer):

    def __init__(self, host: str, port: int, username: str, password: str,
                 sender: str, use_tls: bool = True, timeout: float = 10.0):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender
        self.use_tls = use_tls
        self.timeout = timeout

    def build_message(self, to: str, subject: str, html_body: str) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content("This message requires an HTML-capable mail client.")
        msg.add_alternative(html_body, subtype="html")
        return msg

    async def send(self, to: str, subject: str, html_body: str) -> None:
        await aiosmtplib.send(
            self.build_message(to, subject, html_body),
            hostname=self.host,
            port=self.port,
            username=self.username,
            password=self.password,
            start_tls=self.use_tls,
            timeout=self.timeout,
        )


def build_mailer() -> Mailer:
    if not (config.EMAIL_HOST and config.EMAIL_USER and config.EMAIL_PASSWORD):
        monitoring.logger.info("Email credentials not configured; notifications disabled")
        return DisabledMailer()
    return SmtpMailer(
        host=config.EMAIL_HOST,
        port=config.EMAIL_PORT,
        username=config.EMAIL_USER,
        password=config.EMAIL_PASSWORD,
        sender=config.EMAIL_FROM or config.EMAIL_USER,
        use_tls=config.EMAIL_USE_TLS,
        timeout=config.EMAIL_TIMEOUT,
    )


# ---------------------------------------------------------------------------
# Message bodies
# ---------------------------------------------------------------------------
def confirmation_body(record: AuditRequest) -> str:
    e = {k: html.escape(v) for k, v in record.model_dump(include={"name", "company", "website", "message"}).items()}
    return (
        "<html><body style=\"font-family: Arial, sans-serif; line-height: 1.6; color: #333;\">"
        "<h1>PARALLAX</h1>"
        "<h2>Thank you for your interest!</h2>"
        f"<p>Hi <strong>{e['name']}</strong>,</p>"
        f"<p>We've received your digital audit request for <strong>{e['company']}</strong>.</p>"
        f"<p>Our team will analyze your website (<a href=\"{e['website']}\">{e['website']}</a>) "
        "and get back to you within 24-48 hours with a comprehensive report.</p>"
        f"<p><strong>Your Message:</strong><br>{e['message']}</p>"
        "<p>If you have any questions in the meantime, feel free to reply to this email.</p>"
        "<p>Best regards,<br>The PARALLAX Team</p>"
        "</body></html>"
    )


def admin_subject(record: AuditRequest) -> str:
    return f"New Audit Request from {record.company}"


def admin_body(record: AuditRequest) -> str:
    e = {k: html.escape(v) for k, v in record.model_dump(
        include={"name", "email", "company", "website", "message"}).items()}
    submitted = record.created_at.strftime("%Y-%m-%d %H:%M:%S UTC")
    return (
        "<html><body style=\"font-family: Arial, sans-serif; line-height: 1.6; color: #333;\">"
        "<h2>New Audit Request</h2>"
        f"<p><b>Name:</b> {e['name']}</p>"
        f"<p><b>Email:</b> {e['email']}</p>"
        f"<p><b>Company:</b> {e['company']}</p>"
        f"<p><b>Website:</b> <a href=\"{e['website']}\">{e['website']}</a></p>"
        f"<p><b>Message:</b><br>{e['message']}</p>"
        f"<p><b>Submitted:</b> {submitted}</p>"
        f"<p><b>Reference:</b> {html.escape(record.id)}</p>"
        "</body></html>"
    )


# ---------------------------------------------------------------------------
# Dispatcher
# ---------------------------------------------------------------------------
class NotificationDispatcher:

    def __init__(self, mailer: Mailer, admin_email: Optional[str] = None):
        self.mailer = mailer
        self.admin_email = admin_email

    async def _send(self, kind: str, to: str, subject: str, body: str) -> None:
        try:
            await self.mailer.send(to, subject, body)
        except Exception:
            monitoring.logger.exception("Error sending notification email", extra={"kind": kind})
            monitoring.inc_notification(kind, "error")
            return
        monitoring.logger.info("Notification email sent", extra={"kind": kind})
        monitoring.inc_notification(kind, "sent")

    async def dispatch(self, record: AuditRequest) -> None:
        if not self.mailer.enabled:
            return
        sends = [self._send("confirmation", record.email, CONFIRMATION_SUBJECT, confirmation_body(record))]
        if self.admin_email:
            sends.append(self._send("admin", self.admin_email, admin_subject(record), admin_body(record)))
        await asyncio.gather(*sends)
