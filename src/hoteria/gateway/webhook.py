"""Payment gateway callback signature validation and payload parsing.

Gateways post a JSON body {order_id, transaction_id, success} signed with
HMAC-SHA256 over the raw body, hex-encoded in X-Gateway-Signature.
Never log the payload or the signature.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Gateway-Signature"


class InvalidSignatureError(Exception):
    """Callback signature validation failed."""


class InvalidPayloadError(Exception):
    """Payload structure is invalid or missing required fields."""


@dataclass(frozen=True)
class GatewayEvent:
    """Fields of a gateway callback the booking lifecycle reads."""

    gateway: str
    order_id: str
    transaction_id: str
    success: bool


def sign(payload_bytes: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of the raw body."""
    return hmac.new(secret.encode(), payload_bytes, hashlib.sha256).hexdigest()


def verify_and_extract(
    payload_bytes: bytes,
    signature_header: str,
    webhook_secret: str,
    *,
    gateway: str,
) -> GatewayEvent:
    """Validate the callback signature and extract the event.

    Raises:
        InvalidSignatureError: If the signature does not match.
        InvalidPayloadError: If the body is not a valid callback.
    """
    expected = sign(payload_bytes, webhook_secret)
    if not signature_header or not hmac.compare_digest(expected, signature_header.strip().lower()):
        logger.warning("gateway callback signature verification failed")
        raise InvalidSignatureError("Invalid signature")

    try:
        body = json.loads(payload_bytes)
    except ValueError as exc:
        logger.warning("gateway callback payload parsing failed")
        raise InvalidPayloadError("Invalid payload") from exc

    if not isinstance(body, dict):
        raise InvalidPayloadError("Payload must be an object")

    order_id = body.get("order_id")
    transaction_id = body.get("transaction_id")
    success = body.get("success")
    if not order_id or not transaction_id or not isinstance(success, bool):
        raise InvalidPayloadError("Missing order_id, transaction_id or success")

    return GatewayEvent(
        gateway=gateway,
        order_id=str(order_id),
        transaction_id=str(transaction_id),
        success=success,
    )
