"""Tests for migrations/env_helpers.py DATABASE_URL conversion."""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

# Make migrations importable without alembic context
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from migrations.env_helpers import get_database_url, libpq_dsn_to_url, parse_libpq_dsn

MIGRATIONS = Path(__file__).resolve().parent.parent / "migrations"


class TestParseLibpqDsn:
    def test_quoted_value(self):
        assert parse_libpq_dsn("user=u password='p w'") == {"user": "u", "password": "p w"}


class TestLibpqDsnToUrl:
    def test_unix_socket(self, monkeypatch):
        monkeypatch.delenv("DB_PASSWORD", raising=False)
        dsn = "dbname=hoteria user=svc password=s3cret host=/cloudsql/proj:region:inst"
        assert libpq_dsn_to_url(dsn) == (
            "postgresql+psycopg2://svc:s3cret@/hoteria"
            "?host=%2Fcloudsql%2Fproj%3Aregion%3Ainst"
        )

    def test_tcp_host_default_port(self, monkeypatch):
        monkeypatch.delenv("DB_PASSWORD", raising=False)
        dsn = "dbname=db user=u password=p host=myhost"
        assert libpq_dsn_to_url(dsn) == "postgresql+psycopg2://u:p@myhost:5432/db"

    def test_special_chars_encoded(self, monkeypatch):
        monkeypatch.delenv("DB_PASSWORD", raising=False)
        result = libpq_dsn_to_url("dbname=db user=u@x password=p@ss=w host=h port=5433")
        assert "u%40x" in result
        assert "p%40ss%3Dw" in result
        assert result.endswith("@h:5433/db")

    def test_db_password_env_fallback(self, monkeypatch):
        monkeypatch.setenv("DB_PASSWORD", "from-env")
        result = libpq_dsn_to_url("dbname=db user=u host=h")
        assert result == "postgresql+psycopg2://u:from-env@h:5432/db"


class TestGetDatabaseUrl:
    def test_missing(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        with pytest.raises(RuntimeError):
            get_database_url()

    def test_postgres_scheme_normalized(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgres://u:p@h:5432/db")
        monkeypatch.delenv("DB_PASSWORD", raising=False)
        assert get_database_url() == "postgresql+psycopg2://u:p@h:5432/db"

    def test_url_password_injected(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql://u@h:5432/db")
        monkeypatch.setenv("DB_PASSWORD", "pw")
        assert get_database_url() == "postgresql+psycopg2://u:pw@h:5432/db"

    def test_libpq_dsn(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "dbname=db user=u password=p host=h")
        assert get_database_url() == "postgresql+psycopg2://u:p@h:5432/db"


class TestSchema:
    """The SQL files carry the storage-level guards the domain relies on."""

    def test_exclusion_constraint_on_intervals(self):
        sql = (MIGRATIONS / "sql" / "002_room_reservations_exclusion.sql").read_text()
        assert "EXCLUDE USING gist" in sql
        assert "daterange(checkin, checkout, '[)')" in sql

    def test_single_earn_per_booking(self):
        sql = (MIGRATIONS / "sql" / "001_initial.sql").read_text()
        assert "loyalty_transactions_earn_uq" in sql
        assert "WHERE type = 'earn'" in sql

    def test_processed_events_unique(self):
        sql = (MIGRATIONS / "sql" / "001_initial.sql").read_text()
        assert "UNIQUE (source, external_id)" in sql
