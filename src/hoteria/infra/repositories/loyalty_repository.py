"""Loyalty repository - users' points balance, ledger entries and rewards.

Uses raw SQL with psycopg2 (no ORM). loyalty_transactions is append-only.
"""

from psycopg2.extensions import cursor as PgCursor

from hoteria.domain.errors import NotFoundError
from hoteria.infra.db import fetchall, fetchone, for_update

_USER_COLUMNS = ("id", "external_subject", "email", "name", "role", "points")

_USER_SELECT = f"SELECT {', '.join(_USER_COLUMNS)} FROM users"

REWARD_COLUMNS = (
    "id",
    "name",
    "description",
    "membership_level",
    "points_required",
    "voucher_code",
    "created_at",
)

_REWARD_SELECT = f"SELECT {', '.join(REWARD_COLUMNS)} FROM rewards"


def _user_from_row(row: tuple) -> dict:
    user = dict(zip(_USER_COLUMNS, row))
    user["id"] = str(user["id"])
    return user


def _reward_from_row(row: tuple) -> dict:
    reward = dict(zip(REWARD_COLUMNS, row))
    reward["id"] = str(reward["id"])
    return reward


def get_user(cur: PgCursor, *, user_id: str) -> dict:
    """Fetch a user without locking.

    Raises:
        NotFoundError: If the user does not exist.
    """
    row = fetchone(cur, f"{_USER_SELECT} WHERE id = %s", (user_id,))
    if row is None:
        raise NotFoundError(f"User {user_id} not found")
    return _user_from_row(row)


def lock_user(cur: PgCursor, *, user_id: str) -> dict:
    """Fetch a user with FOR UPDATE (serialises points and voucher changes).

    Raises:
        NotFoundError: If the user does not exist.
    """
    row = for_update(cur, f"{_USER_SELECT} WHERE id = %s", (user_id,))
    if row is None:
        raise NotFoundError(f"User {user_id} not found")
    return _user_from_row(row)


def find_user_id_by_email(cur: PgCursor, *, email: str) -> str | None:
    row = fetchone(cur, "SELECT id FROM users WHERE lower(email) = lower(%s)", (email,))
    return str(row[0]) if row else None


def find_user_by_subject(cur: PgCursor, *, external_subject: str) -> dict | None:
    """Resolve an identity-provider subject to a user."""
    row = fetchone(cur, f"{_USER_SELECT} WHERE external_subject = %s", (external_subject,))
    return _user_from_row(row) if row else None


def get_completed_spending(cur: PgCursor, *, user_id: str) -> int:
    """Sum of amounts over the user's completed earn entries."""
    row = fetchone(
        cur,
        """
        SELECT COALESCE(SUM(amount), 0)
        FROM loyalty_transactions
        WHERE user_id = %s AND type = 'earn' AND status = 'completed'
        """,
        (user_id,),
    )
    return int(row[0])


def has_earn(cur: PgCursor, *, booking_id: str) -> bool:
    row = fetchone(
        cur,
        "SELECT 1 FROM loyalty_transactions WHERE booking_id = %s AND type = 'earn'",
        (booking_id,),
    )
    return row is not None


def insert_earn(
    cur: PgCursor,
    *,
    user_id: str,
    booking_id: str,
    amount: int,
    points: int,
) -> bool:
    """Insert the earn entry for a booking.

    The partial unique index on (booking_id) WHERE type = 'earn' makes this
    a no-op for a booking that already earned.

    Returns:
        True if inserted, False if an earn already existed.
    """
    cur.execute(
        """
        INSERT INTO loyalty_transactions (
            user_id, booking_id, amount, points, type, status, description
        )
        VALUES (%s, %s, %s, %s, 'earn', 'completed', %s)
        ON CONFLICT (booking_id) WHERE type = 'earn' DO NOTHING
        """,
        (user_id, booking_id, amount, points, f"Points earned for booking {booking_id}"),
    )
    return cur.rowcount == 1


def insert_redemption(
    cur: PgCursor,
    *,
    user_id: str,
    reward_id: str,
    points: int,
    description: str,
) -> None:
    """Record a reward_redemption entry with a negative points delta."""
    cur.execute(
        """
        INSERT INTO loyalty_transactions (
            user_id, reward_id, amount, points, type, status, description
        )
        VALUES (%s, %s, 0, %s, 'reward_redemption', 'completed', %s)
        """,
        (user_id, reward_id, -points, description),
    )


def add_points(cur: PgCursor, *, user_id: str, points: int) -> None:
    cur.execute(
        "UPDATE users SET points = points + %s, updated_at = now() WHERE id = %s",
        (points, user_id),
    )


def debit_points(cur: PgCursor, *, user_id: str, points: int) -> bool:
    """Subtract points only if the balance covers them."""
    cur.execute(
        """
        UPDATE users
        SET points = points - %s, updated_at = now()
        WHERE id = %s AND points >= %s
        """,
        (points, user_id, points),
    )
    return cur.rowcount == 1


def get_reward(cur: PgCursor, *, reward_id: str) -> dict:
    """Fetch a reward from the catalog.

    Raises:
        NotFoundError: If the reward does not exist.
    """
    row = fetchone(cur, f"{_REWARD_SELECT} WHERE id = %s", (reward_id,))
    if row is None:
        raise NotFoundError(f"Reward {reward_id} not found")
    return _reward_from_row(row)


def list_rewards(cur: PgCursor, *, membership_level: str | None = None) -> list[dict]:
    """Catalog entries, optionally those of one tier, cheapest first."""
    if membership_level is None:
        rows = fetchall(cur, f"{_REWARD_SELECT} ORDER BY points_required, name")
    else:
        rows = fetchall(
            cur,
            f"{_REWARD_SELECT} WHERE membership_level = %s ORDER BY points_required, name",
            (membership_level,),
        )
    return [_reward_from_row(row) for row in rows]


def insert_reward(
    cur: PgCursor,
    *,
    name: str,
    description: str | None,
    membership_level: str,
    points_required: int,
    voucher_code: str,
) -> str:
    """Add a catalog entry.

    Returns:
        The new reward id.
    """
    row = fetchone(
        cur,
        """
        INSERT INTO rewards (
            name, description, membership_level, points_required, voucher_code
        )
        VALUES (%s, %s, %s, %s, %s)
        RETURNING id
        """,
        (name, description, membership_level, points_required, voucher_code),
    )
    return str(row[0])


def update_reward(cur: PgCursor, *, reward_id: str, reward: dict) -> None:
    """Overwrite a catalog entry's editable fields."""
    cur.execute(
        """
        UPDATE rewards
        SET name = %s,
            description = %s,
            membership_level = %s,
            points_required = %s,
            voucher_code = %s,
            updated_at = now()
        WHERE id = %s
        """,
        (
            reward["name"],
            reward["description"],
            reward["membership_level"],
            reward["points_required"],
            reward["voucher_code"],
            reward_id,
        ),
    )


def delete_reward(cur: PgCursor, *, reward_id: str) -> bool:
    """Remove a catalog entry; issued vouchers and ledger rows keep their codes.

    Returns:
        True if a row was deleted.
    """
    cur.execute("DELETE FROM rewards WHERE id = %s", (reward_id,))
    return cur.rowcount == 1


def reward_code_taken(cur: PgCursor, *, voucher_code: str, exclude_id: str | None = None) -> bool:
    """Whether another catalog entry already hands out this voucher code."""
    row = fetchone(
        cur,
        """
        SELECT 1 FROM rewards
        WHERE voucher_code = %s AND (%s::uuid IS NULL OR id <> %s::uuid)
        """,
        (voucher_code, exclude_id, exclude_id),
    )
    return row is not None


def list_transactions(
    cur: PgCursor,
    *,
    user_id: str,
    limit: int = 50,
    type: str | None = None,
) -> list[dict]:
    """Most recent ledger entries for a user, optionally of one type."""
    rows = fetchall(
        cur,
        """
        SELECT t.id, t.booking_id, t.reward_id, r.name, t.amount, t.points,
               t.type, t.status, t.description, t.created_at
        FROM loyalty_transactions t
        LEFT JOIN rewards r ON r.id = t.reward_id
        WHERE t.user_id = %s AND (%s::text IS NULL OR t.type = %s)
        ORDER BY t.created_at DESC
        LIMIT %s
        """,
        (user_id, type, type, limit),
    )
    return [
        {
            "id": str(row[0]),
            "booking_id": str(row[1]) if row[1] else None,
            "reward_id": str(row[2]) if row[2] else None,
            "reward_name": row[3],
            "amount": row[4],
            "points": row[5],
            "type": row[6],
            "status": row[7],
            "description": row[8],
            "created_at": row[9].isoformat() if row[9] else None,
        }
        for row in rows
    ]
