import base64
import json
from datetime import date
from decimal import Decimal

import httpx
import pytest
import respx

from app.config import Settings
from app.core.exceptions import NotificationFailure
from app.models import Booking, Institution
from app.services.notification_service import EmailAttachment, NotificationService

SENDGRID = "https://sendgrid.test/v3/mail/send"


def _settings(**overrides) -> Settings:
    values = {"sendgrid_api_key": "SG.test", "sendgrid_api_url": SENDGRID}
    values.update(overrides)
    return Settings(_env_file=None, **values)


def _booking() -> Booking:
    return Booking(
        booking_id="CV-ABCD1234",
        user_id="U1",
        institution_id="I1",
        visitor_name="Asha <script>",
        visitor_email="asha@example.com",
        visit_date=date(2025, 6, 1),
        visit_time="10:00",
        amount=Decimal("2000.00"),
        currency="INR",
        pdf_url="https://receipts.test/bookings/CV-ABCD1234/receipt.pdf",
    )


def _institution() -> Institution:
    return Institution(id="I1", name="Green Valley Public School", slug="green-valley")


@pytest.mark.asyncio
@respx.mock
async def test_confirmation_email_attaches_receipt():
    route = respx.post(SENDGRID).respond(202)
    notifier = NotificationService(settings=_settings())

    sent = await notifier.send_booking_confirmation(
        "asha@example.com", _booking(), _institution(), b"%PDF-receipt"
    )

    assert sent is True
    payload = json.loads(route.calls[0].request.content)
    assert payload["personalizations"][0]["to"] == [{"email": "asha@example.com"}]
    assert payload["subject"] == "Booking Confirmed - CV-ABCD1234"
    attachment = payload["attachments"][0]
    assert attachment["filename"] == "receipt-CV-ABCD1234.pdf"
    assert base64.b64decode(attachment["content"]) == b"%PDF-receipt"
    html = next(c["value"] for c in payload["content"] if c["type"] == "text/html")
    assert "<script>" not in html
    assert "INR 2000.00" in html
    await notifier.close()


@pytest.mark.asyncio
@respx.mock
async def test_rejected_email_returns_false():
    respx.post(SENDGRID).respond(500)
    notifier = NotificationService(settings=_settings())

    sent = await notifier.send_booking_confirmation(
        "asha@example.com", _booking(), _institution(), b"%PDF"
    )

    assert sent is False
    await notifier.close()


@pytest.mark.asyncio
@respx.mock
async def test_transport_error_returns_false():
    respx.post(SENDGRID).mock(side_effect=httpx.ConnectError("refused"))
    notifier = NotificationService(settings=_settings())

    assert await notifier.send_booking_confirmation(
        "asha@example.com", _booking(), _institution(), b"%PDF"
    ) is False
    await notifier.close()


@pytest.mark.asyncio
async def test_missing_email_is_skipped():
    notifier = NotificationService(settings=_settings())

    assert await notifier.send_booking_confirmation(None, _booking(), _institution(), b"%PDF") is False


@pytest.mark.asyncio
async def test_send_email_requires_configuration():
    notifier = NotificationService(settings=_settings(sendgrid_api_key=None))

    with pytest.raises(NotificationFailure):
        await notifier.send_email(
            "asha@example.com",
            "Subject",
            "<p>Body</p>",
            attachments=[EmailAttachment(filename="a.pdf", content=b"%PDF")],
        )
