"""Liveness checks for both deployment roles (no database access)."""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from hoteria.api.factory import create_app
from hoteria.domain.errors import StorageUnavailableError
from hoteria.observability.correlation import CORRELATION_ID_HEADER


@pytest.fixture
def database_down():
    with patch(
        "hoteria.infra.db.get_conn",
        side_effect=StorageUnavailableError("database connection failed"),
    ) as get_conn:
        yield get_conn


@pytest.mark.parametrize("role", ["public", "worker"])
def test_health_without_database(database_down, role):
    client = TestClient(create_app(role=role))

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    database_down.assert_not_called()


def test_tasks_health_only_on_worker(database_down):
    worker = TestClient(create_app(role="worker"))
    public = TestClient(create_app(role="public"))

    assert worker.get("/tasks/health").json() == {"status": "ok", "subsystem": "tasks"}
    assert public.get("/tasks/health").status_code == 404


def test_health_echoes_correlation_id():
    client = TestClient(create_app(role="public"))

    response = client.get("/health", headers={CORRELATION_ID_HEADER: "lb-check-42"})

    assert response.headers[CORRELATION_ID_HEADER] == "lb-check-42"


def test_entrypoint_role_from_env(monkeypatch):
    monkeypatch.setenv("APP_ROLE", "worker")

    client = TestClient(create_app())

    assert client.get("/health").status_code == 200
    assert client.get("/tasks/health").status_code == 200
