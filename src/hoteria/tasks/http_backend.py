"""HTTP backend for tasks - sends tasks to the worker via HTTP POST.

Used where the api and worker run as separate services on the same network.
Scheduled tasks are not delayed by this backend; the worker's overdue sweep
covers their deadline.
"""

import os
from datetime import datetime

import requests
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request as GoogleRequest
from google.oauth2.id_token import fetch_id_token

from hoteria.observability.logging import get_logger

logger = get_logger(__name__)

WORKER_BASE_URL = os.environ.get("WORKER_BASE_URL", "http://worker:8000")
INTERNAL_TASK_SECRET = os.environ.get("INTERNAL_TASK_SECRET", "")
HTTP_TIMEOUT = int(os.environ.get("TASKS_HTTP_TIMEOUT", "30"))

# Must match task_auth.LOCAL_DEV_AUDIENCE
_LOCAL_DEV_AUDIENCE = "hoteria-tasks-local"


def _fetch_oidc_token(audience: str) -> str | None:
    """Fetch an ID token for the given audience.

    Relies on the metadata server or application default credentials.

    Returns:
        Signed ID token string, or None if fetching fails.
    """
    try:
        return fetch_id_token(GoogleRequest(), audience)
    except GoogleAuthError as exc:
        logger.error(
            "failed to fetch OIDC ID token",
            extra={"extra_fields": {"audience": audience, "error": str(exc)}},
        )
        return None


def enqueue_http(
    task_id: str,
    url_path: str,
    payload: dict,
    correlation_id: str | None = None,
    schedule_time: datetime | None = None,
) -> bool:
    """Enqueue task via HTTP POST to the worker.

    Args:
        task_id: Unique task identifier (for logging/tracing).
        url_path: Worker endpoint path.
        payload: Task payload (must be PII-free).
        correlation_id: Optional correlation ID for tracing.
        schedule_time: If set, the task is not sent (no delayed delivery).

    Returns:
        True if request succeeded (2xx) or the task was scheduled, False otherwise.
    """
    if schedule_time is not None:
        logger.info(
            "HTTP backend defers scheduled task to the overdue sweep",
            extra={
                "extra_fields": {
                    "task_id": task_id,
                    "schedule_time": schedule_time.isoformat(),
                }
            },
        )
        return True

    url = f"{WORKER_BASE_URL}{url_path}"
    headers = {
        "Content-Type": "application/json",
        "X-Correlation-Id": correlation_id or "",
        "X-Task-Id": task_id,
    }

    # Shared secret for local dev, OIDC token elsewhere
    if os.environ.get("TASKS_OIDC_AUDIENCE", "") == _LOCAL_DEV_AUDIENCE:
        if INTERNAL_TASK_SECRET:
            headers["X-Internal-Task-Secret"] = INTERNAL_TASK_SECRET
    else:
        token = _fetch_oidc_token(WORKER_BASE_URL)
        if not token:
            logger.error(
                "HTTP task enqueue aborted: OIDC token unavailable",
                extra={"extra_fields": {"task_id": task_id, "url_path": url_path}},
            )
            return False
        headers["Authorization"] = f"Bearer {token}"

    try:
        response = requests.post(url, json=payload, headers=headers, timeout=HTTP_TIMEOUT)
        response.raise_for_status()
    except requests.RequestException as exc:
        logger.error(
            "HTTP task enqueue failed",
            extra={"extra_fields": {"task_id": task_id, "url": url, "error": str(exc)}},
        )
        return False

    logger.info(
        "HTTP task enqueued",
        extra={"extra_fields": {"task_id": task_id, "url_path": url_path}},
    )
    return True
