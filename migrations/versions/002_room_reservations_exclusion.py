"""Exclusion constraint: no overlapping intervals per room.

Revision ID: 002_room_reservations_exclusion
Revises: 001_initial_schema
Create Date: 2026-10-05
"""

from __future__ import annotations

from pathlib import Path

from alembic import op


revision = "002_room_reservations_exclusion"
down_revision = "001_initial_schema"
branch_labels = None
depends_on = None


def upgrade() -> None:
    sql_path = Path(__file__).resolve().parents[1] / "sql" / "002_room_reservations_exclusion.sql"
    conn = op.get_bind()
    conn.exec_driver_sql(sql_path.read_text(encoding="utf-8"))


def downgrade() -> None:
    conn = op.get_bind()
    conn.exec_driver_sql(
        "ALTER TABLE room_reservations DROP CONSTRAINT IF EXISTS room_reservations_no_overlap;"
    )
