"""Repository Protocol: dependency inversion for testability."""

from datetime import datetime
from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.co_common.enums import RefundStatus
from src.co_refund.domain.models import RefundRecord


class RefundLedgerProtocol(Protocol):
    async def create(self, db: AsyncSession, record: RefundRecord) -> RefundRecord: ...

    async def create_once(
        self, db: AsyncSession, record: RefundRecord
    ) -> RefundRecord | None: ...

    async def find_by_signature(
        self, db: AsyncSession, variant: str, booking_id: str, signature: str
    ) -> RefundRecord | None: ...

    async def mark_credit_restored(self, db: AsyncSession, record_id: str) -> bool: ...

    async def promote_status(
        self,
        db: AsyncSession,
        record_id: str,
        status: RefundStatus,
        description: str | None,
    ) -> RefundRecord | None: ...

    async def get(self, db: AsyncSession, record_id: str) -> RefundRecord | None: ...

    async def list_records(
        self,
        db: AsyncSession,
        cursor_ts: datetime | None,
        cursor_id: str | None,
        limit: int,
        kind: str | None,
    ) -> list[RefundRecord]: ...
