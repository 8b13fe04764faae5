"""Shared test helper functions for Hoteria tests.

Plain functions (not fixtures) importable by conftest.py and test modules.
"""

from __future__ import annotations

import base64
import time
from datetime import date, datetime, timezone

import jwt
from cryptography.hazmat.primitives.asymmetric import rsa

ISSUER = "https://auth.example.com"
AUDIENCE = "hoteria-api"


def _generate_rsa_keypair():
    """Generate RSA key pair for test JWT signing."""
    private_key = rsa.generate_private_key(
        public_exponent=65537,
        key_size=2048,
    )
    public_key = private_key.public_key()
    return private_key, public_key


def _create_jwks(public_key, kid: str = "test-key-1") -> dict:
    """Create JWKS from public key."""
    public_numbers = public_key.public_numbers()

    def int_to_base64(n: int) -> str:
        byte_length = (n.bit_length() + 7) // 8
        return (
            base64.urlsafe_b64encode(n.to_bytes(byte_length, "big"))
            .rstrip(b"=")
            .decode()
        )

    return {
        "keys": [
            {
                "kty": "RSA",
                "use": "sig",
                "alg": "RS256",
                "kid": kid,
                "n": int_to_base64(public_numbers.n),
                "e": int_to_base64(public_numbers.e),
            }
        ]
    }


def _create_token(
    private_key,
    kid: str = "test-key-1",
    sub: str = "user-123",
    iss: str = ISSUER,
    aud: str = AUDIENCE,
    exp: int | None = None,
) -> str:
    """Create signed JWT for testing."""
    now = int(time.time())
    payload = {
        "sub": sub,
        "iss": iss,
        "aud": aud,
        "exp": exp if exp is not None else now + 3600,
        "iat": now,
    }
    return jwt.encode(payload, private_key, algorithm="RS256", headers={"kid": kid})


def make_booking(**overrides) -> dict:
    """Booking dict shaped like bookings_repository.booking_from_row()."""
    booking = {
        "id": "booking-1",
        "room_id": "room-1",
        "user_id": "user-1",
        "guest_name": "Guest",
        "guest_email": "guest@example.com",
        "guest_phone": None,
        "checkin": date(2025, 3, 10),
        "checkout": date(2025, 3, 12),
        "adults": 2,
        "children": 0,
        "room_type": "deluxe",
        "special_request": None,
        "booked_rate": 1_000_000,
        "status": "pending",
        "payment_status": "pending",
        "payment_method": "cash",
        "payment_deadline": None,
        "voucher_discount": 0,
        "applied_vouchers": [],
        "cancel_reason": None,
        "gateway": None,
        "gateway_order_id": None,
        "gateway_transaction_id": None,
    }
    booking.update(overrides)
    return booking


def make_room(**overrides) -> dict:
    """Room dict shaped like rooms_repository.get_room()."""
    room = {
        "id": "room-1",
        "hotel_id": None,
        "name": "101",
        "room_type": "deluxe",
        "max_count": 2,
        "rent_per_day": 1_000_000,
        "availability_status": "available",
    }
    room.update(overrides)
    return room


T0 = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
