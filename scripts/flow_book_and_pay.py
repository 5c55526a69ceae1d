#!/usr/bin/env python3
"""
Complete booking and payment flow script.

DO NOT ADD BUSINESS LOGIC HERE.
This script only orchestrates API calls.
All rules live in the backend.

Usage:
    python scripts/seed_parking.py            # prints the tokens used below
    python scripts/flow_book_and_pay.py --space-type-id <UUID> \\
        --customer-token <JWT> --owner-token <JWT> --admin-token <JWT> \\
        --start 2026-11-01T09:00:00+05:30 --end 2026-11-01T12:00:00+05:30

Flow:
    1. Check availability
    2. Create booking (customer)
    3. Approve booking (owner)
    4. Get checkout session (customer)
    5. Confirm payment (admin, manual gateway)
    6. Show booking history
"""

import argparse
import json
import sys

import httpx

BASE_URL = "http://localhost:3045"


def api_request(
    token: str | None,
    method: str,
    endpoint: str,
    data: dict | None = None,
    params: dict | None = None,
) -> dict:
    """Make authenticated API request."""
    headers = {"Authorization": f"Bearer {token}"} if token else {}
    url = f"{BASE_URL}{endpoint}"

    response = httpx.request(
        method,
        url,
        headers=headers,
        json=data if method in ("POST", "PUT") else None,
        params=params,
        timeout=10.0,
        follow_redirects=True,
    )
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
    data = result["data"]
    if fields and isinstance(data, dict):
        data = {k: data.get(k) for k in fields if k in data}
    print(json.dumps(data, indent=2))
    return True


def main():
    parser = argparse.ArgumentParser(description="Complete booking and payment flow")
    parser.add_argument("--space-type-id", required=True, help="Space type UUID")
    parser.add_argument("--start", required=True, help="Window start (ISO 8601 with offset)")
    parser.add_argument("--end", required=True, help="Window end (ISO 8601 with offset)")
    parser.add_argument("--customer-token", required=True, help="Customer access token")
    parser.add_argument("--owner-token", required=True, help="Owner access token")
    parser.add_argument("--admin-token", required=True, help="Admin access token")
    parser.add_argument("--vehicle-number", default="KA01AB1234", help="Vehicle registration")
    args = parser.parse_args()

    # Step 1: Availability
    print_step(1, "Check availability")
    availability = api_request(
        None,
        "GET",
        f"/api/v1/space-types/{args.space_type_id}/availability",
        params={"start_at": args.start, "end_at": args.end},
    )
    if not print_result(availability):
        sys.exit(1)
    if availability["data"]["available"] < 1:
        print("ERROR: No units free for the selected window")
        sys.exit(1)

    # Step 2: Create booking
    print_step(2, "Create booking")
    booking_result = api_request(args.customer_token, "POST", "/api/v1/bookings/", {
        "space_type_id": args.space_type_id,
        "start_at": args.start,
        "end_at": args.end,
        "vehicle_number": args.vehicle_number,
    })
    if not print_result(booking_result, ["id", "booking_number", "hours", "amount", "status", "hold_expires_at"]):
        sys.exit(1)

    booking_id = booking_result["data"]["id"]
    booking_number = booking_result["data"]["booking_number"]
    print(f"\nBooking created: {booking_number}")

    # Step 3: Approve
    if booking_result["data"]["status"] == "pending_approval":
        print_step(3, "Approve booking (as owner)")
        approve_result = api_request(args.owner_token, "PUT", f"/api/v1/bookings/{booking_id}/approve")
        if not print_result(approve_result, ["id", "status", "approved_at", "payment_ref"]):
            sys.exit(1)
    else:
        print_step(3, "Instant booking, approval skipped")

    # Step 4: Checkout session
    print_step(4, "Get checkout session")
    checkout_result = api_request(args.customer_token, "POST", "/api/v1/payments/checkout-session", {
        "booking_id": booking_id,
    })
    if not print_result(checkout_result, ["payment_ref", "checkout_url", "gateway", "amount", "status"]):
        sys.exit(1)

    payment_ref = checkout_result["data"]["payment_ref"]

    # Step 5: Confirm payment
    print_step(5, "Confirm payment (as admin)")
    confirm_result = api_request(args.admin_token, "PUT", f"/api/v1/payments/{payment_ref}/success")
    if not print_result(confirm_result):
        sys.exit(1)
    print("\nBooking PAID")

    # Step 6: History
    print_step(6, "Booking history")
    history_result = api_request(args.customer_token, "GET", f"/api/v1/bookings/{booking_id}/history")
    if not print_result(history_result):
        sys.exit(1)

    # Final summary
    print("\n" + "="*60)
    print("FULL FLOW COMPLETE")
    print("="*60)
    print(f"Booking:    {booking_number}")
    print(f"Amount:     {booking_result['data']['amount']:,} paise")


if __name__ == "__main__":
    main()
