"""MembershipRepository: credit counter updates as single conditional UPDATEs.

games_used is only ever written through the two statements below, each a
compare-and-clamp on the newest PAID membership of a user. There is no
read-modify-write, so concurrent restores/consumes for the same user are safe
without an explicit lock. A result of 0 rows means nothing changed: no PAID
membership, or the counter already sits at the floor/ceiling.

Transaction ownership: The CALLER commits.
"""

from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.co_membership.domain.models import Membership

_LATEST_PAID_SUBQUERY = """
    SELECT id FROM memberships
    WHERE user_id = :user_id AND status = 'PAID'
    ORDER BY created_at DESC
    LIMIT 1
"""

_RESTORE_SQL = text(f"""
    UPDATE memberships
    SET games_used = GREATEST(0, games_used - :n),
        updated_at = NOW()
    WHERE id = ({_LATEST_PAID_SUBQUERY})
      AND games_used > 0
    RETURNING id, user_id, games, games_used, status, created_at, updated_at
""")

_CONSUME_SQL = text(f"""
    UPDATE memberships
    SET games_used = LEAST(games, games_used + :n),
        updated_at = NOW()
    WHERE id = ({_LATEST_PAID_SUBQUERY})
      AND games_used < games
    RETURNING id, user_id, games, games_used, status, created_at, updated_at
""")

# Email match wins over username match when both are given.
_FIND_USER_SQL = text("""
    SELECT id FROM users
    WHERE (CAST(:email AS TEXT) IS NOT NULL AND LOWER(email) = LOWER(CAST(:email AS TEXT)))
       OR (CAST(:username AS TEXT) IS NOT NULL AND username = CAST(:username AS TEXT))
    ORDER BY (LOWER(email) = LOWER(COALESCE(CAST(:email AS TEXT), ''))) DESC
    LIMIT 1
""")


def _row_to_membership(row: Any) -> Membership:
    return Membership(
        id=str(row.id),
        user_id=row.user_id,
        games=row.games,
        games_used=row.games_used,
        status=row.status,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class MembershipRepository:
    async def find_user_id(
        self, db: AsyncSession, email: str | None, username: str | None
    ) -> str | None:
        result = await db.execute(_FIND_USER_SQL, {"email": email, "username": username})
        row = result.fetchone()
        return str(row.id) if row is not None else None

    async def restore_credits(
        self, db: AsyncSession, user_id: str, count: int
    ) -> Membership | None:
        result = await db.execute(_RESTORE_SQL, {"user_id": user_id, "n": count})
        row = result.fetchone()
        return _row_to_membership(row) if row is not None else None

    async def consume_credits(
        self, db: AsyncSession, user_id: str, count: int
    ) -> Membership | None:
        result = await db.execute(_CONSUME_SQL, {"user_id": user_id, "n": count})
        row = result.fetchone()
        return _row_to_membership(row) if row is not None else None
