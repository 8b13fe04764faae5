"""Payment gateway webhook - public endpoint for payment results.

Security rules:
- Validate X-Gateway-Signature on every request.
- Never log payload or signature header.
- Return 5xx on unexpected failure (so the gateway retries).
- No business logic here - verification, then record_gateway_result.
"""

from __future__ import annotations

import os

from fastapi import APIRouter, Path, Request, Response
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from hoteria.domain.errors import NotFoundError
from hoteria.domain.payments import record_gateway_result
from hoteria.gateway.webhook import (
    SIGNATURE_HEADER,
    InvalidPayloadError,
    InvalidSignatureError,
    verify_and_extract,
)
from hoteria.observability.correlation import get_correlation_id
from hoteria.observability.logging import get_logger
from hoteria.observability.redaction import safe_log_context

router = APIRouter(tags=["webhooks"])

logger = get_logger(__name__)

SUPPORTED_GATEWAYS = ("momo", "vnpay")


def _get_webhook_secret() -> str:
    """Get gateway webhook secret from environment."""
    secret = os.environ.get("GATEWAY_WEBHOOK_SECRET", "")
    if not secret:
        raise RuntimeError("GATEWAY_WEBHOOK_SECRET not configured")
    return secret


@router.post("/webhooks/payments/{gateway}")
async def payment_webhook(
    request: Request,
    gateway: str = Path(..., description="Gateway name"),
) -> Response:
    """Receive a payment result from a gateway.

    Returns:
        200 with the lifecycle outcome (duplicates included).
        400 if gateway unknown, signature invalid or payload malformed.
        404 if no booking carries the order reference.
        500 if processing fails.
    """
    correlation_id = get_correlation_id()

    if gateway not in SUPPORTED_GATEWAYS:
        return Response(status_code=400, content="unknown gateway")

    payload_bytes = await request.body()

    try:
        webhook_secret = _get_webhook_secret()
    except RuntimeError:
        logger.error(
            "webhook secret not configured",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return Response(status_code=500, content="server configuration error")

    try:
        event = verify_and_extract(
            payload_bytes,
            request.headers.get(SIGNATURE_HEADER, ""),
            webhook_secret,
            gateway=gateway,
        )
    except InvalidSignatureError:
        logger.warning(
            "gateway signature validation failed",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id, gateway=gateway)},
        )
        return Response(status_code=400, content="invalid signature")
    except InvalidPayloadError:
        logger.warning(
            "gateway payload invalid",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id, gateway=gateway)},
        )
        return Response(status_code=400, content="invalid payload")

    logger.info(
        "gateway webhook received",
        extra={
            "extra_fields": safe_log_context(
                correlationId=correlation_id,
                gateway=gateway,
                order_id=event.order_id,
                success=event.success,
            )
        },
    )

    try:
        result = await run_in_threadpool(
            record_gateway_result,
            gateway=event.gateway,
            order_id=event.order_id,
            transaction_id=event.transaction_id,
            success=event.success,
        )
    except NotFoundError:
        return Response(status_code=404, content="unknown order")
    except Exception:
        logger.exception(
            "gateway webhook processing failed",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id, gateway=gateway)},
        )
        return Response(status_code=500, content="processing failed")

    return JSONResponse(status_code=200, content={"ok": True, "status": result["status"]})
