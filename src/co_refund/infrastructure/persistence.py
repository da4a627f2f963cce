"""RefundLedger: append-only refund rows.

Rows are never deleted and only two columns ever change after insert:
membership_credit_restored (false -> true) and status (PENDING -> SUCCESS /
FAILED on a later poll).

Idempotency for no-gateway slot cancellations: slot_signature is only set on
those rows, and a partial unique index over
(booking_variant, booking_id, slot_signature) makes create_once() a no-op for
a retried cancellation.

Transaction ownership: The CALLER commits.
"""

import json
from datetime import date, datetime
from typing import Any

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.co_common.enums import RefundGateway, RefundKind, RefundStatus
from src.co_common.errors import InternalError
from src.co_refund.domain.models import RefundRecord

_COLUMNS = """
    id, kind, booking_id, booking_variant, registration_id, user_id, user_email,
    user_name, amount_cents, currency, reason, order_id, gateway, refund_id,
    gateway_refund_id, gateway_payment_id, status, status_description,
    slot_signature, membership_credit_restored, meta, created_at, updated_at
"""

_INSERT_VALUES = """
    INSERT INTO refunds (
        id, kind, booking_id, booking_variant, registration_id, user_id, user_email,
        user_name, amount_cents, currency, reason, order_id, gateway, refund_id,
        gateway_refund_id, gateway_payment_id, status, status_description,
        slot_signature, membership_credit_restored, meta
    ) VALUES (
        :id, :kind, :booking_id, :booking_variant, :registration_id, :user_id, :user_email,
        :user_name, :amount_cents, :currency, :reason, :order_id, :gateway, :refund_id,
        :gateway_refund_id, :gateway_payment_id, :status, :status_description,
        :slot_signature, :membership_credit_restored, CAST(:meta AS JSONB)
    )
"""

_INSERT_SQL = text(f"{_INSERT_VALUES} RETURNING {_COLUMNS}")

_INSERT_ONCE_SQL = text(f"""
    {_INSERT_VALUES}
    ON CONFLICT (booking_variant, booking_id, slot_signature) WHERE slot_signature IS NOT NULL
    DO NOTHING
    RETURNING {_COLUMNS}
""")

_FIND_BY_SIGNATURE_SQL = text(f"""
    SELECT {_COLUMNS}
    FROM refunds
    WHERE booking_variant = :variant
      AND booking_id = :booking_id
      AND slot_signature = :signature
    LIMIT 1
""")

_MARK_CREDIT_RESTORED_SQL = text("""
    UPDATE refunds
    SET membership_credit_restored = TRUE, updated_at = NOW()
    WHERE id = :id AND membership_credit_restored = FALSE
    RETURNING id
""")

_PROMOTE_SQL = text(f"""
    UPDATE refunds
    SET status = :status,
        status_description = COALESCE(CAST(:description AS TEXT), status_description),
        updated_at = NOW()
    WHERE id = :id AND status = 'PENDING'
    RETURNING {_COLUMNS}
""")

_GET_SQL = text(f"SELECT {_COLUMNS} FROM refunds WHERE id = :id")

_LIST_SQL = text(f"""
    SELECT {_COLUMNS}
    FROM refunds
    WHERE (CAST(:kind AS TEXT) IS NULL OR kind = CAST(:kind AS TEXT))
      AND (CAST(:cursor_ts AS TIMESTAMPTZ) IS NULL
           OR (created_at, id) < (CAST(:cursor_ts AS TIMESTAMPTZ), CAST(:cursor_id AS TEXT)))
    ORDER BY created_at DESC, id DESC
    LIMIT :limit
""")


def _json_default(value: Any) -> str:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def _record_params(record: RefundRecord) -> dict[str, Any]:
    return {
        "id": record.id,
        "kind": record.kind.value,
        "booking_id": record.booking_id,
        "booking_variant": record.booking_variant,
        "registration_id": record.registration_id,
        "user_id": record.user_id,
        "user_email": record.user_email.lower() if record.user_email else None,
        "user_name": record.user_name,
        "amount_cents": record.amount_cents,
        "currency": record.currency,
        "reason": record.reason,
        "order_id": record.order_id,
        "gateway": record.gateway.value,
        "refund_id": record.refund_id,
        "gateway_refund_id": record.gateway_refund_id or None,
        "gateway_payment_id": record.gateway_payment_id or None,
        "status": record.status.value,
        "status_description": record.status_description,
        "slot_signature": record.slot_signature,
        "membership_credit_restored": record.membership_credit_restored,
        "meta": json.dumps(record.meta or {}, default=_json_default),
    }


def _row_to_record(row: Any) -> RefundRecord:
    meta = row.meta
    if isinstance(meta, str):
        meta = json.loads(meta)
    return RefundRecord(
        id=str(row.id),
        kind=RefundKind(row.kind),
        booking_id=row.booking_id,
        booking_variant=row.booking_variant,
        registration_id=row.registration_id,
        user_id=row.user_id,
        user_email=row.user_email,
        user_name=row.user_name,
        amount_cents=row.amount_cents,
        currency=row.currency,
        reason=row.reason,
        order_id=row.order_id,
        gateway=RefundGateway(row.gateway),
        refund_id=row.refund_id,
        gateway_refund_id=row.gateway_refund_id,
        gateway_payment_id=row.gateway_payment_id,
        status=RefundStatus(row.status),
        status_description=row.status_description,
        slot_signature=row.slot_signature,
        membership_credit_restored=row.membership_credit_restored,
        meta=meta or {},
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class RefundLedger:
    async def create(self, db: AsyncSession, record: RefundRecord) -> RefundRecord:
        result = await db.execute(_INSERT_SQL, _record_params(record))
        row = result.fetchone()
        if row is None:
            raise InternalError("Refund insert returned no rows")
        return _row_to_record(row)

    async def create_once(
        self, db: AsyncSession, record: RefundRecord
    ) -> RefundRecord | None:
        """Insert unless (booking_variant, booking_id, slot_signature) already exists.

        None means the row was already there: an idempotent duplicate.
        """
        result = await db.execute(_INSERT_ONCE_SQL, _record_params(record))
        row = result.fetchone()
        return _row_to_record(row) if row is not None else None

    async def find_by_signature(
        self, db: AsyncSession, variant: str, booking_id: str, signature: str
    ) -> RefundRecord | None:
        result = await db.execute(
            _FIND_BY_SIGNATURE_SQL,
            {"variant": variant, "booking_id": booking_id, "signature": signature},
        )
        row = result.fetchone()
        return _row_to_record(row) if row is not None else None

    async def mark_credit_restored(self, db: AsyncSession, record_id: str) -> bool:
        result = await db.execute(_MARK_CREDIT_RESTORED_SQL, {"id": record_id})
        return result.fetchone() is not None

    async def promote_status(
        self,
        db: AsyncSession,
        record_id: str,
        status: RefundStatus,
        description: str | None,
    ) -> RefundRecord | None:
        result = await db.execute(
            _PROMOTE_SQL,
            {"id": record_id, "status": status.value, "description": description},
        )
        row = result.fetchone()
        return _row_to_record(row) if row is not None else None

    async def get(self, db: AsyncSession, record_id: str) -> RefundRecord | None:
        result = await db.execute(_GET_SQL, {"id": record_id})
        row = result.fetchone()
        return _row_to_record(row) if row is not None else None

    async def list_records(
        self,
        db: AsyncSession,
        cursor_ts: datetime | None,
        cursor_id: str | None,
        limit: int,
        kind: str | None,
    ) -> list[RefundRecord]:
        result = await db.execute(
            _LIST_SQL,
            {
                "kind": kind,
                "cursor_ts": cursor_ts,
                "cursor_id": cursor_id,
                "limit": limit,
            },
        )
        return [_row_to_record(row) for row in result.fetchall()]
