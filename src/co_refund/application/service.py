"""RefundQueryService: read side of the refund ledger."""

from sqlalchemy.ext.asyncio import AsyncSession

from src.co_common.enums import RefundKind
from src.co_common.errors import RefundRecordNotFoundError, ValidationError
from src.co_refund.application.schemas import (
    RefundItem,
    RefundListResponse,
    cursor_decode,
    cursor_encode,
)
from src.co_refund.domain.repository import RefundLedgerProtocol
from src.co_refund.infrastructure.persistence import RefundLedger


class RefundQueryService:
    def __init__(self, ledger: RefundLedgerProtocol | None = None) -> None:
        self._ledger: RefundLedgerProtocol = ledger or RefundLedger()

    async def list_refunds(
        self,
        db: AsyncSession,
        cursor: str | None,
        limit: int,
        kind: str | None,
    ) -> RefundListResponse:
        if kind is not None and kind not in {k.value for k in RefundKind}:
            raise ValidationError(f"Unknown refund kind: {kind}")
        cursor_ts, cursor_id = cursor_decode(cursor)
        # Fetch limit+1 to detect has_more without a COUNT(*) query
        records = await self._ledger.list_records(
            db, cursor_ts, cursor_id, limit + 1, kind
        )
        has_more = len(records) > limit
        page = records[:limit]

        items = [RefundItem.from_record(r) for r in page]
        next_cursor = cursor_encode(page[-1]) if has_more and page else None
        return RefundListResponse(items=items, next_cursor=next_cursor, has_more=has_more)

    async def get_refund(self, db: AsyncSession, record_id: str) -> RefundItem:
        record = await self._ledger.get(db, record_id)
        if record is None:
            raise RefundRecordNotFoundError(record_id)
        return RefundItem.from_record(record)
