"""Worker routes for booking payment-deadline tasks."""

from typing import Any

from fastapi import APIRouter, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from hoteria.api.task_auth import verify_task_auth
from hoteria.domain.expire_bookings import (
    DEFAULT_SWEEP_LIMIT,
    expire_booking,
    expire_overdue_bookings,
)
from hoteria.observability.correlation import get_correlation_id
from hoteria.observability.logging import get_logger
from hoteria.observability.redaction import safe_log_context

router = APIRouter(prefix="/tasks/bookings", tags=["tasks"])

logger = get_logger(__name__)


def _require_task_auth(request: Request, correlation_id: str) -> None:
    if not verify_task_auth(request):
        logger.warning(
            "task auth failed",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        raise HTTPException(status_code=401, detail="Unauthorized")


async def _read_json(request: Request) -> dict[str, Any] | None:
    try:
        payload = await request.json()
    except ValueError:
        return None
    return payload if isinstance(payload, dict) else None


@router.post("/expire")
async def handle_expire(request: Request) -> JSONResponse:
    """Expire one booking whose payment deadline has passed.

    Dedupe via processed_events:
    - booking missing/settled: 200 "noop"
    - deadline ahead: 200 "not_expired_yet"
    - task already processed: 200 "duplicate"
    - canceled and interval released: 200 "expired"

    Expected payload:
    - task_id: Unique task identifier (required)
    - booking_id: Booking UUID (required)
    """
    correlation_id = get_correlation_id()
    _require_task_auth(request, correlation_id)

    payload = await _read_json(request)
    if payload is None:
        return JSONResponse(status_code=400, content={"ok": False, "error": "invalid json"})

    task_id = payload.get("task_id", "")
    booking_id = payload.get("booking_id", "")
    if not task_id or not booking_id:
        logger.warning(
            "missing required fields",
            extra={
                "extra_fields": safe_log_context(
                    correlationId=correlation_id,
                    has_task_id=bool(task_id),
                    has_booking_id=bool(booking_id),
                )
            },
        )
        return JSONResponse(
            status_code=400,
            content={"ok": False, "error": "missing required fields"},
        )

    try:
        result = await run_in_threadpool(expire_booking, booking_id=booking_id, task_id=task_id)
    except Exception:
        logger.exception(
            "expire-booking task failed",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id, booking_id=booking_id)},
        )
        return JSONResponse(status_code=500, content={"ok": False, "error": "processing failed"})

    logger.info(
        "expire-booking task completed",
        extra={
            "extra_fields": safe_log_context(
                correlationId=correlation_id,
                booking_id=booking_id,
                status=result.get("status"),
            )
        },
    )
    return JSONResponse(status_code=200, content={"ok": True, **result})


@router.post("/expire-overdue")
async def handle_expire_overdue(request: Request) -> JSONResponse:
    """Sweep all overdue bank-transfer bookings (called by a scheduler).

    Optional payload: {"limit": int}
    """
    correlation_id = get_correlation_id()
    _require_task_auth(request, correlation_id)

    payload = await _read_json(request) or {}
    limit = payload.get("limit", DEFAULT_SWEEP_LIMIT)
    if not isinstance(limit, int) or limit < 1:
        return JSONResponse(status_code=400, content={"ok": False, "error": "invalid limit"})

    try:
        result = await run_in_threadpool(expire_overdue_bookings, limit=limit)
    except Exception:
        logger.exception(
            "expire-overdue sweep failed",
            extra={"extra_fields": safe_log_context(correlationId=correlation_id)},
        )
        return JSONResponse(status_code=500, content={"ok": False, "error": "processing failed"})

    return JSONResponse(status_code=200, content={"ok": True, **result})
