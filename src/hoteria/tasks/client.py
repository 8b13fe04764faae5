"""Tasks client with idempotent enqueue.

Backends selectable via TASKS_BACKEND env var:
- inline (default): registers tasks without executing them (dev/tests)
- http: sends tasks to the worker via HTTP POST
"""

import os
from datetime import datetime

TASKS_BACKEND = os.environ.get("TASKS_BACKEND", "inline")


class TasksClient:
    """Tasks client with idempotent enqueue by task_id.

    Tracks task_ids so that the same task_id is enqueued at most once per
    process.
    """

    def __init__(self, backend: str | None = None) -> None:
        self._enqueued_ids: set[str] = set()
        self._scheduled_tasks: list[dict] = []
        self._backend = backend or TASKS_BACKEND

    def enqueue_http(
        self,
        task_id: str,
        url_path: str,
        payload: dict,
        correlation_id: str | None = None,
        schedule_time: datetime | None = None,
    ) -> bool:
        """Enqueue a task for the worker.

        Args:
            task_id: Unique identifier for idempotency.
            url_path: Worker endpoint path (e.g., "/tasks/bookings/expire").
            payload: Task data (must not contain PII).
            correlation_id: Optional correlation ID for tracing.
            schedule_time: Optional future execution time.

        Returns:
            True if the task was enqueued (new task_id).
            False if no-op (task_id already seen) or the backend refused it.

        Raises:
            ValueError: If TASKS_BACKEND is unknown.
        """
        if task_id in self._enqueued_ids:
            return False

        if self._backend == "inline":
            self._enqueued_ids.add(task_id)
            self._scheduled_tasks.append({
                "task_id": task_id,
                "url_path": url_path,
                "payload": payload,
                "correlation_id": correlation_id,
                "schedule_time": schedule_time,
            })
            return True

        if self._backend == "http":
            from hoteria.tasks.http_backend import enqueue_http

            sent = enqueue_http(task_id, url_path, payload, correlation_id, schedule_time)
            if sent:
                self._enqueued_ids.add(task_id)
            return sent

        raise ValueError(f"Unknown TASKS_BACKEND: {self._backend}")

    def was_enqueued(self, task_id: str) -> bool:
        return task_id in self._enqueued_ids

    def get_scheduled_tasks(self) -> list[dict]:
        """Get list of registered tasks (useful for testing)."""
        return list(self._scheduled_tasks)

    def clear(self) -> None:
        """Clear enqueued task_ids and registered tasks (useful for testing)."""
        self._enqueued_ids.clear()
        self._scheduled_tasks.clear()
