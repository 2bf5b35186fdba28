import pytest
from conftest import auth_headers, fetch_booking

from app.domain.booking_state import CANCELLED, CONFIRMED, PENDING

BOOKING_PAYLOAD = {
    "institution_id": "I1",
    "visit_date": "2025-06-01",
    "visit_time": "10:00",
    "amount": 2000,
    "visitor_name": "Asha",
    "visitor_phone": "98765 43210",
}


async def _create(client, headers=None):
    response = await client.post("/api/v1/bookings", json=BOOKING_PAYLOAD, headers=headers or auth_headers())
    assert response.status_code == 201, response.text
    return response.json()


async def _verify(client, gateway, booking_id, order_id, payment_id="pay_0001", signature=None):
    return await client.post(
        "/api/v1/bookings/verify-payment",
        json={
            "razorpay_order_id": order_id,
            "razorpay_payment_id": payment_id,
            "razorpay_signature": signature or gateway.sign(order_id, payment_id),
            "booking_id": booking_id,
        },
        headers=auth_headers(),
    )


@pytest.mark.asyncio
async def test_health_needs_no_auth(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_bookings_require_bearer_token(client, institution):
    response = await client.post("/api/v1/bookings", json=BOOKING_PAYLOAD)

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_invalid_token_rejected(client, institution):
    response = await client.get("/api/v1/bookings", headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_create_booking_returns_pending_booking_and_order(client, institution):
    body = await _create(client)

    booking = body["booking"]
    assert booking["status"] == PENDING
    assert booking["visitor_phone"] == "+919876543210"
    assert booking["visitor_email"] == "asha@example.com"
    assert body["payment"]["amount"] == 200000
    assert body["payment"]["receipt"] == booking["booking_id"]
    assert body["payment"]["currency"] == "INR"
    assert body["payment"]["key_id"] == "rzp_test_key"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "override",
    [
        {"amount": None},
        {"amount": -5},
        {"amount": "12.345"},
        {"visit_time": "25:00"},
        {"institution_id": ""},
    ],
)
async def test_invalid_create_payload_is_422(client, institution, override):
    payload = {**BOOKING_PAYLOAD, **override}

    response = await client.post("/api/v1/bookings", json=payload, headers=auth_headers())

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_gateway_outage_is_502(client, gateway, institution):
    gateway.fail_orders = True

    response = await client.post("/api/v1/bookings", json=BOOKING_PAYLOAD, headers=auth_headers())

    assert response.status_code == 502
    assert "payment_gateway" in response.json()["detail"]


@pytest.mark.asyncio
async def test_verify_payment_flow(client, gateway, notifier, institution, session_maker):
    body = await _create(client)
    booking_id = body["booking"]["booking_id"]
    order_id = body["payment"]["order_id"]

    response = await _verify(client, gateway, booking_id, order_id)

    assert response.status_code == 200, response.text
    result = response.json()
    assert result["already_confirmed"] is False
    assert result["booking"]["status"] == CONFIRMED
    assert result["booking"]["pdf_url"].endswith(f"bookings/{booking_id}/receipt.pdf")
    assert len(notifier.sent) == 1

    again = await _verify(client, gateway, booking_id, order_id)
    assert again.status_code == 200
    assert again.json()["already_confirmed"] is True
    assert again.json()["booking"]["pdf_url"] == result["booking"]["pdf_url"]
    assert len(notifier.sent) == 1

    stored = await fetch_booking(session_maker, booking_id)
    assert stored.status == CONFIRMED


@pytest.mark.asyncio
async def test_tampered_signature_is_400(client, gateway, institution, session_maker):
    body = await _create(client)
    booking_id = body["booking"]["booking_id"]
    order_id = body["payment"]["order_id"]

    response = await _verify(client, gateway, booking_id, order_id, signature="0" * 64)

    assert response.status_code == 400
    stored = await fetch_booking(session_maker, booking_id)
    assert stored.status == PENDING


@pytest.mark.asyncio
async def test_storage_outage_is_503_and_booking_stays_pending(
    client, gateway, storage, institution, session_maker
):
    body = await _create(client)
    booking_id = body["booking"]["booking_id"]
    storage.fail = True

    response = await _verify(client, gateway, booking_id, body["payment"]["order_id"])

    assert response.status_code == 503
    stored = await fetch_booking(session_maker, booking_id)
    assert stored.status == PENDING
    assert stored.pdf_url is None


@pytest.mark.asyncio
async def test_verify_missing_fields_is_422(client, institution):
    response = await client.post(
        "/api/v1/bookings/verify-payment",
        json={"razorpay_order_id": "order_0001", "razorpay_payment_id": "pay_0001"},
        headers=auth_headers(),
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_booking_details_visible_to_owner_and_admin_only(client, institution):
    body = await _create(client)
    booking_id = body["booking"]["booking_id"]

    mine = await client.get(f"/api/v1/bookings/{booking_id}", headers=auth_headers())
    assert mine.status_code == 200
    details = mine.json()
    assert details["institution_name"] == "Green Valley Public School"
    assert details["institution_contact"]["phone"] == "+912025431234"
    assert details["category_name"] == "School"
    assert details["amount"] == "2000.00"

    other = await client.get(f"/api/v1/bookings/{booking_id}", headers=auth_headers("U2"))
    assert other.status_code == 403

    admin = await client.get(f"/api/v1/bookings/{booking_id}", headers=auth_headers("A1", role="ADMIN"))
    assert admin.status_code == 200

    missing = await client.get("/api/v1/bookings/CV-NOPE0000", headers=auth_headers())
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_list_my_bookings(client, institution):
    first = await _create(client)
    await _create(client, headers=auth_headers("U2", email="ravi@example.com"))

    response = await client.get("/api/v1/bookings", headers=auth_headers())

    assert response.status_code == 200
    assert [b["booking_id"] for b in response.json()] == [first["booking"]["booking_id"]]


@pytest.mark.asyncio
async def test_payment_order_retry(client, institution):
    body = await _create(client)
    booking_id = body["booking"]["booking_id"]

    response = await client.post(f"/api/v1/bookings/{booking_id}/payment-order", headers=auth_headers())

    assert response.status_code == 200
    assert response.json()["amount"] == 200000
    assert response.json()["order_id"] == body["payment"]["order_id"]

    forbidden = await client.post(f"/api/v1/bookings/{booking_id}/payment-order", headers=auth_headers("U2"))
    assert forbidden.status_code == 403


# ==================== ADMIN ====================


@pytest.mark.asyncio
async def test_admin_routes_require_admin(client, institution):
    response = await client.get("/api/v1/admin/bookings", headers=auth_headers())

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_admin_list_and_cancel(client, gateway, institution):
    body = await _create(client)
    booking_id = body["booking"]["booking_id"]
    admin = auth_headers("A1", role="ADMIN")

    listing = await client.get("/api/v1/admin/bookings", params={"status": "pending"}, headers=admin)
    assert listing.status_code == 200
    assert listing.json()["total"] == 1
    assert listing.json()["bookings"][0]["booking_id"] == booking_id

    bad_filter = await client.get("/api/v1/admin/bookings", params={"status": "completed"}, headers=admin)
    assert bad_filter.status_code == 422

    forced = await client.put(
        f"/api/v1/admin/bookings/{booking_id}/status", json={"status": "confirmed"}, headers=admin
    )
    assert forced.status_code == 409

    cancelled = await client.put(
        f"/api/v1/admin/bookings/{booking_id}/status", json={"status": "cancelled"}, headers=admin
    )
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == CANCELLED

    late = await _verify(client, gateway, booking_id, body["payment"]["order_id"])
    assert late.status_code == 409


@pytest.mark.asyncio
async def test_admin_receipt_link(client, gateway, institution):
    body = await _create(client)
    booking_id = body["booking"]["booking_id"]
    admin = auth_headers("A1", role="ADMIN")

    before = await client.get(f"/api/v1/admin/bookings/{booking_id}/receipt", headers=admin)
    assert before.status_code == 404

    await _verify(client, gateway, booking_id, body["payment"]["order_id"])

    after = await client.get(f"/api/v1/admin/bookings/{booking_id}/receipt", headers=admin)
    assert after.status_code == 200
    assert f"bookings/{booking_id}/receipt.pdf" in after.json()["url"]
    assert after.json()["expires_in"] == 3600


@pytest.mark.asyncio
async def test_admin_stats(client, gateway, institution):
    admin = auth_headers("A1", role="ADMIN")
    paid = await _create(client)
    await _verify(client, gateway, paid["booking"]["booking_id"], paid["payment"]["order_id"])
    await _create(client)

    forbidden = await client.get("/api/v1/admin/stats", headers=auth_headers())
    assert forbidden.status_code == 403

    response = await client.get("/api/v1/admin/stats", headers=admin)

    assert response.status_code == 200
    body = response.json()
    assert body["total_bookings"] == 2
    assert body["revenue"] == "2000.00"
    assert body["by_status"] == [
        {"status": PENDING, "count": 1, "amount": "2000.00"},
        {"status": CONFIRMED, "count": 1, "amount": "2000.00"},
        {"status": CANCELLED, "count": 0, "amount": "0.00"},
    ]
