"""Discounts repository - discount definitions, usage counters, personal vouchers.

Uses raw SQL with psycopg2 (no ORM).
"""

from datetime import datetime

from psycopg2.extensions import cursor as PgCursor

from hoteria.domain.discounts import OwnedVoucher
from hoteria.infra.db import fetchall, fetchone, for_update

DISCOUNT_COLUMNS = (
    "id",
    "name",
    "description",
    "type",
    "discount_type",
    "value",
    "max_discount",
    "start_date",
    "end_date",
    "applicable_room_ids",
    "min_booking_amount",
    "is_stackable",
    "code",
    "membership_level",
    "min_spending",
)

# uuid[] comes back as a string unless cast
_SELECT_LIST = ", ".join(
    "applicable_room_ids::text[]" if c == "applicable_room_ids" else c for c in DISCOUNT_COLUMNS
)


def _discount_from_row(row: tuple) -> dict:
    record = dict(zip(DISCOUNT_COLUMNS, row))
    record["id"] = str(record["id"])
    return record


def fetch_discounts(cur: PgCursor, *, identifiers: list[str]) -> list[dict]:
    """Fetch live discounts matching codes or ids, in the caller's order.

    An identifier matches a voucher code or a discount id. Identifiers with
    no match are skipped; a discount matched twice is returned once.

    Returns:
        List of discount records (dicts keyed by DISCOUNT_COLUMNS).
    """
    if not identifiers:
        return []

    rows = fetchall(
        cur,
        f"""
        SELECT {_SELECT_LIST}
        FROM discounts
        WHERE is_deleted = false
          AND (code = ANY(%s) OR id::text = ANY(%s))
        """,
        (identifiers, identifiers),
    )
    records = [_discount_from_row(row) for row in rows]

    by_key: dict[str, dict] = {}
    for record in records:
        by_key[record["id"]] = record
        if record["code"]:
            by_key[record["code"]] = record

    ordered: list[dict] = []
    seen: set[str] = set()
    for identifier in identifiers:
        record = by_key.get(identifier)
        if record is None or record["id"] in seen:
            continue
        seen.add(record["id"])
        ordered.append(record)
    return ordered


def find_voucher_by_code(cur: PgCursor, *, code: str) -> dict | None:
    """Fetch the live voucher-type discount with this code."""
    row = fetchone(
        cur,
        f"""
        SELECT {_SELECT_LIST}
        FROM discounts
        WHERE code = %s AND type = 'voucher' AND is_deleted = false
        """,
        (code,),
    )
    return _discount_from_row(row) if row else None


def voucher_code_exists(cur: PgCursor, *, code: str, exclude_id: str | None = None) -> bool:
    row = fetchone(
        cur,
        """
        SELECT 1 FROM discounts
        WHERE code = %s AND is_deleted = false
          AND (%s::uuid IS NULL OR id <> %s::uuid)
        """,
        (code, exclude_id, exclude_id),
    )
    return row is not None


def lock_discount(cur: PgCursor, *, discount_id: str) -> dict | None:
    """Fetch a live discount with FOR UPDATE."""
    row = for_update(
        cur,
        f"SELECT {_SELECT_LIST} FROM discounts WHERE id = %s AND is_deleted = false",
        (discount_id,),
    )
    return _discount_from_row(row) if row else None


def list_active_discounts(
    cur: PgCursor,
    *,
    type: str,
    now: datetime,
    membership_level: str | None = None,
    max_min_spending: int | None = None,
) -> list[dict]:
    """Live discounts of one type whose window contains now.

    membership_level narrows member discounts to one tier;
    max_min_spending keeps accumulated discounts the spending already reaches.
    """
    rows = fetchall(
        cur,
        f"""
        SELECT {_SELECT_LIST}
        FROM discounts
        WHERE is_deleted = false
          AND type = %s
          AND start_date <= %s AND end_date >= %s
          AND (%s::text IS NULL OR membership_level = %s)
          AND (%s::bigint IS NULL OR min_spending <= %s)
        ORDER BY start_date, name
        """,
        (
            type,
            now,
            now,
            membership_level,
            membership_level,
            max_min_spending,
            max_min_spending,
        ),
    )
    return [_discount_from_row(row) for row in rows]


def insert_discount(cur: PgCursor, *, definition: dict) -> str:
    """Insert a discount definition. Returns the new id."""
    cur.execute(
        """
        INSERT INTO discounts (
            name, description, type, discount_type, value, max_discount,
            start_date, end_date, applicable_room_ids, min_booking_amount,
            is_stackable, code, membership_level, min_spending
        )
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s::uuid[], %s, %s, %s, %s, %s)
        RETURNING id
        """,
        (
            definition["name"],
            definition.get("description"),
            definition["type"],
            definition["discount_type"],
            definition["value"],
            definition.get("max_discount"),
            definition["start_date"],
            definition["end_date"],
            list(definition.get("applicable_room_ids") or []),
            definition.get("min_booking_amount", 0),
            definition.get("is_stackable", False),
            definition.get("code"),
            definition.get("membership_level"),
            definition.get("min_spending"),
        ),
    )
    return str(cur.fetchone()[0])


def update_discount(cur: PgCursor, *, discount_id: str, definition: dict) -> None:
    """Overwrite every editable field of a discount; type stays as stored."""
    cur.execute(
        """
        UPDATE discounts
        SET name = %s,
            description = %s,
            discount_type = %s,
            value = %s,
            max_discount = %s,
            start_date = %s,
            end_date = %s,
            applicable_room_ids = %s::uuid[],
            min_booking_amount = %s,
            is_stackable = %s,
            code = %s,
            membership_level = %s,
            min_spending = %s,
            updated_at = now()
        WHERE id = %s
        """,
        (
            definition["name"],
            definition.get("description"),
            definition["discount_type"],
            definition["value"],
            definition.get("max_discount"),
            definition["start_date"],
            definition["end_date"],
            list(definition.get("applicable_room_ids") or []),
            definition.get("min_booking_amount", 0),
            definition.get("is_stackable", False),
            definition.get("code"),
            definition.get("membership_level"),
            definition.get("min_spending"),
            discount_id,
        ),
    )


def soft_delete_discount(cur: PgCursor, *, discount_id: str) -> int:
    """Flag a discount as deleted. Returns rows affected (0 if missing or already deleted)."""
    cur.execute(
        """
        UPDATE discounts
        SET is_deleted = true, updated_at = now()
        WHERE id = %s AND is_deleted = false
        """,
        (discount_id,),
    )
    return cur.rowcount


def get_usage_counts(cur: PgCursor, *, user_id: str, discount_ids: list[str]) -> dict[str, int]:
    """Per-user usage counters for the given discounts."""
    if not discount_ids:
        return {}
    rows = fetchall(
        cur,
        """
        SELECT discount_id, count
        FROM discount_usages
        WHERE user_id = %s AND discount_id::text = ANY(%s)
        """,
        (user_id, discount_ids),
    )
    return {str(discount_id): count for discount_id, count in rows}


def increment_usage(cur: PgCursor, *, discount_id: str, user_id: str) -> None:
    cur.execute(
        """
        INSERT INTO discount_usages (discount_id, user_id, count)
        VALUES (%s, %s, 1)
        ON CONFLICT (discount_id, user_id)
        DO UPDATE SET count = discount_usages.count + 1
        """,
        (discount_id, user_id),
    )


_USER_VOUCHERS_SELECT = """
    SELECT voucher_code, is_used, expiry_date
    FROM user_vouchers
    WHERE user_id = %s
"""


def _owned_vouchers(rows: list[tuple]) -> dict[str, OwnedVoucher]:
    return {
        code: OwnedVoucher(code=code, is_used=is_used, expiry_date=expiry_date)
        for code, is_used, expiry_date in rows
    }


def get_user_vouchers(cur: PgCursor, *, user_id: str) -> dict[str, OwnedVoucher]:
    """The user's personal vouchers keyed by code, without locking."""
    return _owned_vouchers(fetchall(cur, _USER_VOUCHERS_SELECT, (user_id,)))


def lock_user_vouchers(cur: PgCursor, *, user_id: str) -> dict[str, OwnedVoucher]:
    """Lock and return the user's personal vouchers keyed by code."""
    return _owned_vouchers(fetchall(cur, _USER_VOUCHERS_SELECT + "FOR UPDATE", (user_id,)))


def mark_voucher_used(cur: PgCursor, *, user_id: str, code: str) -> bool:
    """Flip is_used on an unused voucher. False if it was already used."""
    cur.execute(
        """
        UPDATE user_vouchers
        SET is_used = true, used_at = now()
        WHERE user_id = %s AND voucher_code = %s AND is_used = false
        """,
        (user_id, code),
    )
    return cur.rowcount == 1


def insert_user_voucher(
    cur: PgCursor,
    *,
    user_id: str,
    reward_id: str,
    code: str,
    expiry_date: datetime,
) -> bool:
    """Issue a personal voucher. False if the user already holds this code."""
    cur.execute(
        """
        INSERT INTO user_vouchers (user_id, reward_id, voucher_code, expiry_date)
        VALUES (%s, %s, %s, %s)
        ON CONFLICT (user_id, voucher_code) DO NOTHING
        """,
        (user_id, reward_id, code, expiry_date),
    )
    return cur.rowcount == 1


def list_unused_vouchers(cur: PgCursor, *, user_id: str) -> list[dict]:
    """The user's personal vouchers not yet spent, with the reward they came from."""
    rows = fetchall(
        cur,
        """
        SELECT v.voucher_code, v.expiry_date, v.created_at, r.id, r.name
        FROM user_vouchers v
        LEFT JOIN rewards r ON r.id = v.reward_id
        WHERE v.user_id = %s AND v.is_used = false
        ORDER BY v.created_at DESC
        """,
        (user_id,),
    )
    return [
        {
            "voucher_code": code,
            "expiry_date": expiry_date,
            "issued_at": issued_at,
            "reward_id": str(reward_id) if reward_id else None,
            "reward_name": reward_name,
        }
        for code, expiry_date, issued_at, reward_id, reward_name in rows
    ]
