"""RegistrationRepository: raw SQL over registrations (+ events for the fee).

Transaction ownership: The CALLER commits.
"""

from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.co_registration.domain.models import Registration

_GET_SQL = text("""
    SELECT r.id, r.event_id, r.event_title, r.user_id, r.user_email, r.user_name,
           r.order_id, r.amount_cents, r.currency, r.admin_paid, r.created_at,
           e.entry_fee_cents, e.title AS joined_title
    FROM registrations r
    LEFT JOIN events e ON e.id = r.event_id
    WHERE r.id = :id
""")

_DELETE_SQL = text("DELETE FROM registrations WHERE id = :id RETURNING id")

_MARK_PAID_SQL = text("""
    UPDATE registrations
    SET admin_paid = TRUE, updated_at = NOW()
    WHERE id = :id AND admin_paid = FALSE
    RETURNING id
""")


def _row_to_registration(row: Any) -> Registration:
    return Registration(
        id=str(row.id),
        event_id=str(row.event_id),
        event_title=row.event_title or row.joined_title,
        user_id=row.user_id,
        user_email=row.user_email,
        user_name=row.user_name,
        order_id=row.order_id,
        amount_cents=row.amount_cents,
        entry_fee_cents=row.entry_fee_cents,
        currency=row.currency,
        admin_paid=row.admin_paid,
        created_at=row.created_at,
    )


class RegistrationRepository:
    async def get(self, db: AsyncSession, registration_id: str) -> Registration | None:
        result = await db.execute(_GET_SQL, {"id": registration_id})
        row = result.fetchone()
        return _row_to_registration(row) if row is not None else None

    async def delete(self, db: AsyncSession, registration_id: str) -> bool:
        result = await db.execute(_DELETE_SQL, {"id": registration_id})
        return result.fetchone() is not None

    async def mark_paid(self, db: AsyncSession, registration_id: str) -> bool:
        result = await db.execute(_MARK_PAID_SQL, {"id": registration_id})
        return result.fetchone() is not None
