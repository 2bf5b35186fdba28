#!/usr/bin/env python3
"""
Complete booking and payment flow script.

DO NOT ADD BUSINESS LOGIC HERE.
This script only orchestrates API calls.
All rules live in the backend.

Tokens are minted with the local IDENTITY_JWT_KEY and the checkout signature
is computed with RAZORPAY_KEY_SECRET, so this only works against a local or
sandbox server that shares this machine's .env (and has payment
reconciliation switched off).

Usage:
    python scripts/flow_book_and_pay.py --institution-id <ID> --visit-date 2026-06-01 --visit-time 10:00 --amount 2000
    python scripts/flow_book_and_pay.py --institution-id I1 --visit-date 2026-06-01 --visit-time 10:00 --amount 2000 --verify-twice

Flow:
    1. Create booking (pending) and payment order
    2. Simulate checkout: sign order_id|payment_id
    3. Verify payment (confirms booking, stores receipt)
    4. Fetch booking details
    5. Optionally verify again (must report already_confirmed)
"""

import argparse
import hashlib
import hmac
import json
import secrets
import sys

import httpx

from app.config import settings
from app.core.security import create_access_token

BASE_URL = "http://localhost:8000"

# Test identity
VISITOR_ID = "flow-visitor"
VISITOR_EMAIL = "visitor@campusvisit.test"


def api_request(token: str, method: str, endpoint: str, data: dict | None = None) -> dict:
    """Make authenticated API request."""
    headers = {"Authorization": f"Bearer {token}"}
    url = f"{BASE_URL}{settings.api_prefix}{endpoint}"

    if method == "GET":
        response = httpx.get(url, headers=headers, timeout=30.0, follow_redirects=True)
    elif method == "POST":
        response = httpx.post(url, headers=headers, json=data or {}, timeout=30.0, follow_redirects=True)
    else:
        raise ValueError(f"Unknown method: {method}")

    return {"status": response.status_code, "data": response.json() if response.text else {}}


def print_step(step: int, title: str):
    """Print step header."""
    print(f"\n{'='*60}")
    print(f"STEP {step}: {title}")
    print("="*60)


def print_result(result: dict, fields: list[str] | None = None):
    """Print result, optionally filtering fields."""
    if result["status"] >= 400:
        print(f"ERROR ({result['status']}): {json.dumps(result['data'], indent=2)}")
        return False

    print(f"Status: {result['status']}")
    if fields:
        filtered = {k: result["data"].get(k) for k in fields if k in result["data"]}
        print(json.dumps(filtered, indent=2))
    else:
        print(json.dumps(result["data"], indent=2))
    return True


def sign_checkout(order_id: str, payment_id: str) -> str:
    """Signature the checkout widget would hand back to the client."""
    if not settings.razorpay_key_secret:
        print("ERROR: RAZORPAY_KEY_SECRET is not set")
        sys.exit(1)
    return hmac.new(
        settings.razorpay_key_secret.encode(),
        f"{order_id}|{payment_id}".encode(),
        hashlib.sha256,
    ).hexdigest()


def main():
    parser = argparse.ArgumentParser(description="Complete booking and payment flow")
    parser.add_argument("--institution-id", required=True, help="Institution ID")
    parser.add_argument("--visit-date", required=True, help="Visit date (YYYY-MM-DD)")
    parser.add_argument("--visit-time", default="10:00", help="Visit time (HH:MM)")
    parser.add_argument("--amount", required=True, help="Booking amount in rupees")
    parser.add_argument("--name", default="Flow Visitor", help="Visitor name")
    parser.add_argument("--verify-twice", action="store_true", help="Repeat verification to check idempotency")
    args = parser.parse_args()

    token = create_access_token(VISITOR_ID, email=VISITOR_EMAIL)

    # Step 1: Create booking
    print_step(1, "Create booking")
    booking_result = api_request(token, "POST", "/bookings", {
        "institution_id": args.institution_id,
        "visit_date": args.visit_date,
        "visit_time": args.visit_time,
        "amount": args.amount,
        "visitor_name": args.name,
    })
    if not print_result(booking_result):
        sys.exit(1)

    booking_id = booking_result["data"]["booking"]["booking_id"]
    order = booking_result["data"]["payment"]
    print(f"\nBooking created: {booking_id}")
    print(f"  Order:  {order['order_id']}")
    print(f"  Amount: {order['amount']:,} paise ({order['amount']/100:,.2f} {order['currency']})")

    # Step 2: Simulate checkout
    print_step(2, "Simulate checkout")
    payment_id = f"pay_{secrets.token_hex(7)}"
    signature = sign_checkout(order["order_id"], payment_id)
    print(f"Payment:   {payment_id}")
    print(f"Signature: {signature[:8]}...")

    verify_payload = {
        "razorpay_order_id": order["order_id"],
        "razorpay_payment_id": payment_id,
        "razorpay_signature": signature,
        "booking_id": booking_id,
    }

    # Step 3: Verify payment
    print_step(3, "Verify payment")
    verify_result = api_request(token, "POST", "/bookings/verify-payment", verify_payload)
    if not print_result(verify_result):
        sys.exit(1)
    print("\nBooking CONFIRMED")

    # Step 4: Booking details
    print_step(4, "Fetch booking details")
    details_result = api_request(token, "GET", f"/bookings/{booking_id}")
    if not print_result(details_result, ["booking_id", "institution_name", "visit_date", "visit_time", "amount", "status", "payment_id", "pdf_url"]):
        sys.exit(1)

    if args.verify_twice:
        print_step(5, "Verify payment again")
        again_result = api_request(token, "POST", "/bookings/verify-payment", verify_payload)
        if not print_result(again_result, ["already_confirmed"]):
            sys.exit(1)
        if not again_result["data"].get("already_confirmed"):
            print("ERROR: second verification was not reported as already confirmed")
            sys.exit(1)

    # Final summary
    print("\n" + "="*60)
    print("FULL FLOW COMPLETE")
    print("="*60)
    print(f"Booking: {booking_id}")
    print(f"Receipt: {details_result['data'].get('pdf_url')}")


if __name__ == "__main__":
    main()
