"""Notification Service for transactional email.

Booking confirmations are best effort: delivery problems are logged and
never change the outcome of the payment that triggered them.
"""

import base64
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from html import escape
from typing import Any

import httpx

from app.config import Settings, settings as default_settings
from app.core.exceptions import NotificationFailure
from app.models.booking import Booking
from app.models.institution import Institution

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmailAttachment:
    """File attached to an outgoing email."""

    filename: str
    content: bytes
    content_type: str = "application/pdf"


class NotificationService:
    """Service for sending transactional email via SendGrid."""

    def __init__(
        self,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize notification service."""
        self._settings = settings or default_settings
        self._http_client = http_client
        self._owns_client = http_client is None

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Lazy-load HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._settings.email_timeout_seconds)
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    # ==================== EMAIL (SENDGRID) ====================

    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: str | None = None,
        attachments: list[EmailAttachment] | None = None,
    ) -> None:
        """Send an email via SendGrid.

        Args:
            to_email: Recipient email
            subject: Email subject
            html_content: HTML body
            text_content: Plain text body
            attachments: Files to attach

        Raises:
            NotificationFailure: if SendGrid is not configured, unreachable,
                or rejects the message
        """
        if not self._settings.sendgrid_api_key:
            raise NotificationFailure("SendGrid is not configured")

        headers = {
            "Authorization": f"Bearer {self._settings.sendgrid_api_key}",
            "Content-Type": "application/json",
        }

        payload: dict[str, Any] = {
            "personalizations": [
                {
                    "to": [{"email": to_email}],
                }
            ],
            "from": {
                "email": self._settings.email_from_address,
                "name": self._settings.email_from_name,
            },
            "subject": subject,
            "content": [{"type": "text/html", "value": html_content}],
        }
        if text_content:
            payload["content"].insert(0, {"type": "text/plain", "value": text_content})

        if attachments:
            payload["attachments"] = [
                {
                    "content": base64.b64encode(attachment.content).decode("ascii"),
                    "filename": attachment.filename,
                    "type": attachment.content_type,
                    "disposition": "attachment",
                }
                for attachment in attachments
            ]

        try:
            response = await self.http_client.post(
                self._settings.sendgrid_api_url,
                headers=headers,
                json=payload,
                timeout=self._settings.email_timeout_seconds,
            )
        except httpx.HTTPError as e:
            raise NotificationFailure(f"SendGrid request failed: {e.__class__.__name__}: {e}")

        if response.status_code not in (200, 202):
            raise NotificationFailure(f"SendGrid returned {response.status_code}")

    # ==================== BOOKING NOTIFICATIONS ====================

    async def send_booking_confirmation(
        self,
        visitor_email: str | None,
        booking: Booking,
        institution: Institution,
        receipt_bytes: bytes,
    ) -> bool:
        """Email the visitor their confirmation with the receipt attached.

        Never raises; returns True if SendGrid accepted the message.
        """
        if not visitor_email:
            logger.warning(f"Booking {booking.booking_id}: no visitor email, confirmation not sent")
            return False

        try:
            details = [
                ("Booking ID", booking.booking_id),
                ("Institution", institution.name),
                ("Visit date", booking.visit_date.strftime("%d %B %Y")),
                ("Visit time", booking.visit_time),
                ("Amount paid", f"{booking.currency} {booking.amount:.2f}"),
            ]
            greeting = f"Hi {booking.visitor_name}, your visit is confirmed. Your receipt is attached."
            text = "\n".join([greeting, ""] + [f"{label}: {value}" for label, value in details])
            await self.send_email(
                to_email=visitor_email,
                subject=f"Booking Confirmed - {booking.booking_id}",
                html_content=self._generate_email_html(greeting, details, booking.pdf_url),
                text_content=text,
                attachments=[
                    EmailAttachment(
                        filename=f"receipt-{booking.booking_id}.pdf",
                        content=receipt_bytes,
                    )
                ],
            )
        except NotificationFailure as e:
            logger.warning(f"Booking {booking.booking_id}: confirmation email not delivered: {e}")
            return False
        except Exception:
            logger.exception(f"Booking {booking.booking_id}: unexpected error sending confirmation email")
            return False

        logger.info(f"Booking {booking.booking_id}: confirmation email sent")
        return True

    def _generate_email_html(
        self,
        greeting: str,
        details: list[tuple[str, str]],
        receipt_url: str | None,
    ) -> str:
        """Confirmation email body: greeting, details table, receipt link."""
        rows = "".join(
            f'<tr><td style="padding: 6px 12px 6px 0; color: #6b7280;">{escape(label)}</td>'
            f'<td style="padding: 6px 0; font-weight: 600;">{escape(value)}</td></tr>'
            for label, value in details
        )
        link = ""
        if receipt_url:
            link = (
                f'<p style="margin-top: 24px;"><a href="{escape(receipt_url, quote=True)}" '
                'style="background-color: #0F766E; color: #ffffff; padding: 12px 24px; '
                'text-decoration: none; border-radius: 6px;">Download receipt</a></p>'
            )

        return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"></head>
<body style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px; color: #1f2937;">
  <h1 style="font-size: 22px;">Your campus visit is confirmed</h1>
  <p style="font-size: 15px;">{escape(greeting)}</p>
  <table style="border-collapse: collapse; font-size: 14px;">{rows}</table>
  {link}
  <p style="color: #9ca3af; font-size: 12px; margin-top: 32px;">
    {escape(self._settings.receipt_footer_text)}<br>
    &copy; {datetime.now(UTC).year} {escape(self._settings.app_name)}
  </p>
</body>
</html>
"""
