"""Integration tests for credit clamping and ledger dedup (requires running PG).

Pre-condition: make up && make migrate

The conditional UPDATEs and the partial unique index only exist in the
database, so these run against PostgreSQL rather than the in-memory fakes.
"""

import uuid

import pytest
from httpx import AsyncClient
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.co_common.enums import RefundKind, RefundStatus
from src.co_common.id_generator import generate_record_id
from src.co_refund.domain.models import RefundRecord
from src.co_refund.infrastructure.persistence import RefundLedger

pytestmark = [pytest.mark.asyncio(loop_scope="session"), pytest.mark.integration]


async def _seed_member(session: AsyncSession, games_used: int) -> dict[str, str]:
    uid = uuid.uuid4().hex[:8]
    user = {"id": f"user_{uid}", "username": f"member_{uid}", "email": f"member_{uid}@example.com"}
    await session.execute(
        text("INSERT INTO users (id, username, email, name) VALUES (:id, :username, :email, :username)"),
        user,
    )
    await session.execute(
        text("""
            INSERT INTO memberships (user_id, games, games_used, status)
            VALUES (:user_id, 10, :games_used, 'PAID')
        """),
        {"user_id": user["id"], "games_used": games_used},
    )
    await session.commit()
    return user


async def _games_used(session: AsyncSession, user_id: str) -> int:
    result = await session.execute(
        text("SELECT games_used FROM memberships WHERE user_id = :id"), {"id": user_id}
    )
    return int(result.scalar_one())


def _slot_record(booking_id: str, variant: str) -> RefundRecord:
    return RefundRecord(
        id=generate_record_id(),
        kind=RefundKind.SLOT_CANCEL,
        amount_cents=0,
        currency="INR",
        status=RefundStatus.NO_REFUND_REQUIRED,
        booking_id=booking_id,
        booking_variant=variant,
        slot_signature="1_06:00_07:00",
    )


async def _signature_rows(session: AsyncSession, booking_id: str) -> list[str]:
    result = await session.execute(
        text("SELECT booking_variant FROM refunds WHERE booking_id = :id ORDER BY booking_variant"),
        {"id": booking_id},
    )
    return [row.booking_variant for row in result.fetchall()]


class TestCreditClamping:
    async def test_restore_at_zero_stays_at_zero(
        self, client: AsyncClient, session: AsyncSession
    ) -> None:
        user = await _seed_member(session, games_used=0)

        for _ in range(3):
            resp = await client.post(
                "/api/v1/memberships/credits/restore", json={"email": user["email"], "count": 1}
            )
            assert resp.status_code == 200
            assert resp.json()["data"]["changed"] is False

        assert await _games_used(session, user["id"]) == 0

    async def test_restore_clamps_at_floor(
        self, client: AsyncClient, session: AsyncSession
    ) -> None:
        user = await _seed_member(session, games_used=2)

        resp = await client.post(
            "/api/v1/memberships/credits/restore", json={"username": user["username"], "count": 5}
        )

        assert resp.json()["data"]["changed"] is True
        assert await _games_used(session, user["id"]) == 0

    async def test_consume_at_ceiling_stays_at_ceiling(
        self, client: AsyncClient, session: AsyncSession
    ) -> None:
        user = await _seed_member(session, games_used=10)

        for _ in range(3):
            resp = await client.post(
                "/api/v1/memberships/credits/consume", json={"email": user["email"], "count": 1}
            )
            assert resp.status_code == 200
            assert resp.json()["data"]["changed"] is False

        assert await _games_used(session, user["id"]) == 10

    async def test_consume_clamps_at_ceiling(
        self, client: AsyncClient, session: AsyncSession
    ) -> None:
        user = await _seed_member(session, games_used=8)

        resp = await client.post(
            "/api/v1/memberships/credits/consume", json={"email": user["email"], "count": 5}
        )

        assert resp.json()["data"]["changed"] is True
        assert await _games_used(session, user["id"]) == 10


class TestLedgerDedup:
    async def test_duplicate_signature_inserts_once(self, session: AsyncSession) -> None:
        ledger = RefundLedger()
        booking_id = f"bk_{uuid.uuid4().hex[:8]}"

        first = await ledger.create_once(session, _slot_record(booking_id, "account"))
        await session.commit()
        second = await ledger.create_once(session, _slot_record(booking_id, "account"))
        await session.commit()

        assert first is not None
        assert second is None
        assert await _signature_rows(session, booking_id) == ["account"]
        found = await ledger.find_by_signature(session, "account", booking_id, "1_06:00_07:00")
        assert found is not None
        assert found.id == first.id

    async def test_same_id_in_both_tables_gets_two_rows(self, session: AsyncSession) -> None:
        ledger = RefundLedger()
        booking_id = f"bk_{uuid.uuid4().hex[:8]}"

        account = await ledger.create_once(session, _slot_record(booking_id, "account"))
        guest = await ledger.create_once(session, _slot_record(booking_id, "guest"))
        await session.commit()

        assert account is not None
        assert guest is not None
        assert await _signature_rows(session, booking_id) == ["account", "guest"]
        assert await ledger.find_by_signature(session, "guest", booking_id, "x") is None
