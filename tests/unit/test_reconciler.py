"""CancellationReconciler flows over in-memory repositories.

The gateway client is the real one on an httpx.MockTransport, with sleep
replaced so the poll schedule runs instantly.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from unittest.mock import AsyncMock, call

import httpx
import pytest

from src.co_cancellation.application.service import (
    WHOLE_BOOKING_SIGNATURE,
    CancellationReconciler,
)
from src.co_cancellation.domain.models import SlotSelector
from src.co_common.enums import (
    BookingVariant,
    PaymentPath,
    RefundGateway,
    RefundKind,
    RefundStatus,
)
from src.co_common.errors import (
    BookingNotFoundError,
    CancellationInProgressError,
    GatewayError,
    InvalidRefundAmountError,
    RefundNotConfirmedError,
    RefundRecordNotFoundError,
    RefundRejectedError,
    RegistrationNotFoundError,
    SlotNotFoundError,
)
from src.co_membership.application.service import MembershipCreditService
from src.co_payment.infrastructure.gateway_client import PaymentGatewayClient
from src.co_refund.domain.models import RefundRecord
from src.co_registration.domain.models import Registration
from tests.factories import (
    SLOT_A,
    SLOT_B,
    SLOT_C,
    make_booking,
    make_member_booking,
    make_online_booking,
)
from tests.fakes import (
    InMemoryBookings,
    InMemoryLedger,
    InMemoryMemberships,
    InMemoryRegistrations,
    ScriptedGateway,
)

POLL_DELAYS_MS = [500, 900, 1300]


@asynccontextmanager
async def no_lock(key: str) -> AsyncIterator[None]:
    yield


@asynccontextmanager
async def held_lock(key: str) -> AsyncIterator[None]:
    raise CancellationInProgressError(key)
    yield


@dataclass
class Harness:
    reconciler: CancellationReconciler
    bookings: InMemoryBookings
    ledger: InMemoryLedger
    memberships: InMemoryMemberships
    registrations: InMemoryRegistrations
    gateway: ScriptedGateway
    sleep: AsyncMock
    audit: AsyncMock
    db: AsyncMock
    journal: list[str] = field(default_factory=list)


def build(
    *bookings,
    gateway: ScriptedGateway | None = None,
    games_used: int = 3,
    registrations: tuple[Registration, ...] = (),
    lock=no_lock,
) -> Harness:
    journal: list[str] = []
    booking_repo = InMemoryBookings(*bookings, journal=journal)
    ledger = InMemoryLedger(journal=journal)
    memberships = InMemoryMemberships(games_used=games_used)
    registration_repo = InMemoryRegistrations(*registrations)
    scripted = gateway or ScriptedGateway()
    sleep = AsyncMock()
    audit = AsyncMock()
    db = AsyncMock()
    db.commit.side_effect = lambda: journal.append("commit")
    db.rollback.side_effect = lambda: journal.append("rollback")
    client = PaymentGatewayClient(
        app_id="app-test", secret_key="secret-test", api_version="2023-08-01",
        environment="sandbox", transport=httpx.MockTransport(scripted), sleep=sleep,
    )
    reconciler = CancellationReconciler(
        bookings=booking_repo,
        ledger=ledger,
        credits=MembershipCreditService(repo=memberships),
        gateway=client,
        audit=audit,
        registrations=registration_repo,
        lock=lock,
        poll_delays_ms=POLL_DELAYS_MS,
    )
    return Harness(reconciler, booking_repo, ledger, memberships, registration_repo,
                   scripted, sleep, audit, db, journal)


async def exported_rows(h: Harness) -> list:
    await h.reconciler.drain_exports()
    h.audit.export.assert_awaited_once()
    return h.audit.export.await_args.args[0]


class TestSlotCancelNoGateway:
    async def test_cash_booking_middle_slot(self) -> None:
        h = build(make_booking())

        outcome = await h.reconciler.cancel_slot(h.db, "bk-1", SlotSelector(slot_index=1))

        assert outcome.path == PaymentPath.NO_GATEWAY
        assert outcome.refunded_cents == 50000
        assert outcome.refund_status == RefundStatus.NO_REFUND_REQUIRED
        assert outcome.booking_deleted is False
        stored = h.bookings.rows["bk-1"]
        assert stored.slots == [SLOT_A, SLOT_C]
        assert stored.amount_cents == 100000

        [record] = h.ledger.by_booking("bk-1")
        assert record.kind == RefundKind.SLOT_CANCEL
        assert record.gateway == RefundGateway.NONE
        assert record.slot_signature == SLOT_B.signature
        assert record.meta["total_slots_before"] == 3
        assert record.meta["slot"] == SLOT_B.to_dict()
        assert h.gateway.requests == []

        [row] = await exported_rows(h)
        assert (row.court_id, row.start, row.end) == (1, "07:00", "08:00")
        assert row.amount_cents == 50000
        assert row.payment_ref == "PAID.CASH"

    async def test_ledger_committed_before_booking_mutation(self) -> None:
        h = build(make_booking())
        await h.reconciler.cancel_slot(h.db, "bk-1", SlotSelector(slot_index=0))
        assert h.journal == ["ledger.create_once", "commit", "bookings.remove_slot", "commit"]

    async def test_select_by_court_and_time(self) -> None:
        h = build(make_booking())
        selector = SlotSelector(court_id=2, start="06:00", end="07:00")

        await h.reconciler.cancel_slot(h.db, "bk-1", selector)

        assert h.bookings.rows["bk-1"].slots == [SLOT_A, SLOT_B]

    async def test_remainder_lands_on_last_slot(self) -> None:
        h = build(make_booking(amount_cents=100000))

        refunds = []
        deleted = []
        for _ in range(3):
            outcome = await h.reconciler.cancel_slot(h.db, "bk-1", SlotSelector(slot_index=0))
            refunds.append(outcome.refunded_cents)
            deleted.append(outcome.booking_deleted)

        assert refunds == [33333, 33334, 33333]
        assert sum(refunds) == 100000
        assert deleted == [False, False, True]
        assert "bk-1" not in h.bookings.rows
        assert len(h.ledger.by_booking("bk-1")) == 3

    async def test_guest_online_booking_never_touches_gateway(self) -> None:
        guest = make_online_booking(
            variant=BookingVariant.GUEST, user_id=None, user_email=None, user_name=None,
            guest_name="Ravi", guest_phone="9800000000",
        )
        h = build(guest)

        outcome = await h.reconciler.cancel_slot(h.db, "bk-g", SlotSelector(slot_index=0))

        assert outcome.path == PaymentPath.NO_GATEWAY
        assert outcome.refunded_cents == 30000
        assert h.gateway.requests == []
        [row] = await exported_rows(h)
        assert row.payer_name == "Ravi"
        assert row.phone == "9800000000"
        assert row.who == "guest"

    async def test_guest_booking_sharing_an_account_id_gets_its_own_row(self) -> None:
        h = build(make_booking())
        await h.reconciler.cancel_slot(h.db, "bk-1", SlotSelector(slot_index=0))

        h.bookings.put(make_booking(variant=BookingVariant.GUEST, guest_name="Ravi"))
        outcome = await h.reconciler.cancel_slot(h.db, "bk-1", SlotSelector(slot_index=0))

        assert len(outcome.record_ids) == 1
        records = h.ledger.by_booking("bk-1")
        assert sorted(r.booking_variant for r in records) == ["account", "guest"]
        assert {r.slot_signature for r in records} == {SLOT_A.signature}


class TestSlotCancelMembership:
    async def test_single_slot_restores_credit_and_deletes(self) -> None:
        h = build(make_member_booking(slots=[SLOT_A]), games_used=3)

        outcome = await h.reconciler.cancel_slot(h.db, "bk-m", SlotSelector(slot_index=0))

        assert outcome.path == PaymentPath.MEMBERSHIP
        assert outcome.refunded_cents == 0
        assert outcome.booking_deleted is True
        assert "bk-m" not in h.bookings.rows
        assert h.memberships.membership.games_used == 2
        [record] = h.ledger.by_booking("bk-m")
        assert record.membership_credit_restored is True
        assert record.amount_cents == 0
        [row] = await exported_rows(h)
        assert row.who == "member"
        assert row.amount_cents == 0

    async def test_retry_after_partial_failure_is_idempotent(self) -> None:
        h = build(make_member_booking(), games_used=3)
        await h.reconciler.cancel_slot(h.db, "bk-m", SlotSelector(slot_index=0))

        # Booking mutation never happened; the slot is back.
        h.bookings.put(make_member_booking())
        outcome = await h.reconciler.cancel_slot(h.db, "bk-m", SlotSelector(slot_index=0))

        records = h.ledger.by_booking("bk-m")
        assert len(records) == 1
        assert outcome.record_ids == [records[0].id]
        assert h.memberships.membership.games_used == 2
        assert h.bookings.rows["bk-m"].slots == [SLOT_B, SLOT_C]

    async def test_concurrent_insert_skips_credit(self) -> None:
        h = build(make_member_booking(), games_used=3)
        await h.ledger.create(
            h.db,
            RefundRecord(
                id="rf-earlier", kind=RefundKind.SLOT_CANCEL, amount_cents=0,
                currency="INR", status=RefundStatus.NO_REFUND_REQUIRED,
                booking_id="bk-m", booking_variant="account", slot_signature=SLOT_A.signature,
            ),
        )
        h.ledger.find_by_signature = AsyncMock(return_value=None)

        outcome = await h.reconciler.cancel_slot(h.db, "bk-m", SlotSelector(slot_index=0))

        assert outcome.record_ids == []
        assert h.memberships.membership.games_used == 3
        assert len(h.ledger.by_booking("bk-m")) == 1

    async def test_unresolvable_member_still_cancels(self) -> None:
        booking = make_member_booking(user_id=None, user_email="ghost@example.com", user_name="ghost")
        h = build(booking, games_used=3)

        outcome = await h.reconciler.cancel_slot(h.db, "bk-m", SlotSelector(slot_index=0))

        assert outcome.booking_deleted is False
        assert h.memberships.membership.games_used == 3
        [record] = h.ledger.by_booking("bk-m")
        assert record.membership_credit_restored is False
        assert len(h.bookings.rows["bk-m"].slots) == 2

    async def test_member_resolved_by_email(self) -> None:
        booking = make_member_booking(user_id=None)
        h = build(booking, games_used=3)

        await h.reconciler.cancel_slot(h.db, "bk-m", SlotSelector(slot_index=0))

        assert h.memberships.membership.games_used == 2


class TestSlotCancelGateway:
    async def test_immediate_success(self) -> None:
        h = build(make_online_booking(), gateway=ScriptedGateway(create_status="SUCCESS"))

        outcome = await h.reconciler.cancel_slot(h.db, "bk-g", SlotSelector(slot_index=0))

        assert outcome.path == PaymentPath.GATEWAY_PAID
        assert outcome.refunded_cents == 30000
        assert outcome.refund_status == RefundStatus.SUCCESS
        h.sleep.assert_not_awaited()
        [create] = h.gateway.creates
        assert create.url.path == "/pg/orders/order_8842/refunds"
        [record] = h.ledger.by_booking("bk-g")
        assert record.gateway == RefundGateway.GATEWAY
        assert record.status == RefundStatus.SUCCESS
        assert record.gateway_refund_id == "cf-r-1"
        assert record.refund_id.startswith("refund_")
        stored = h.bookings.rows["bk-g"]
        assert len(stored.slots) == 2
        assert stored.amount_cents == 60000

    async def test_pending_then_success(self) -> None:
        scripted = ScriptedGateway(create_status="PENDING", poll_statuses=["PENDING", "SUCCESS"])
        h = build(make_online_booking(), gateway=scripted)

        outcome = await h.reconciler.cancel_slot(h.db, "bk-g", SlotSelector(slot_index=0))

        assert outcome.refund_status == RefundStatus.SUCCESS
        assert h.sleep.await_args_list == [call(0.5), call(0.9)]

    async def test_unconfirmed_refund_leaves_booking_untouched(self) -> None:
        scripted = ScriptedGateway(create_status="PENDING")
        h = build(make_online_booking(), gateway=scripted)

        with pytest.raises(RefundNotConfirmedError) as exc_info:
            await h.reconciler.cancel_slot(h.db, "bk-g", SlotSelector(slot_index=0))

        assert exc_info.value.http_status == 409
        assert exc_info.value.details["status"] == "PENDING"
        assert h.sleep.await_args_list == [call(0.5), call(0.9), call(1.3)]
        assert h.ledger.rows == {}
        stored = h.bookings.rows["bk-g"]
        assert len(stored.slots) == 3
        assert stored.amount_cents == 90000
        h.audit.export.assert_not_awaited()

    async def test_failed_refund_is_not_confirmed(self) -> None:
        scripted = ScriptedGateway(create_status="PENDING", poll_statuses=["FAILED"] * 3)
        h = build(make_online_booking(), gateway=scripted)

        with pytest.raises(RefundNotConfirmedError) as exc_info:
            await h.reconciler.cancel_slot(h.db, "bk-g", SlotSelector(slot_index=0))
        assert exc_info.value.last_status == "FAILED"

    async def test_gateway_rejects_create(self) -> None:
        h = build(make_online_booking(), gateway=ScriptedGateway(create_http=400))

        with pytest.raises(GatewayError) as exc_info:
            await h.reconciler.cancel_slot(h.db, "bk-g", SlotSelector(slot_index=0))

        assert exc_info.value.http_status == 400
        assert h.ledger.rows == {}
        assert len(h.bookings.rows["bk-g"].slots) == 3

    async def test_share_rounding_to_zero_is_rejected(self) -> None:
        h = build(make_online_booking(amount_cents=1))

        with pytest.raises(InvalidRefundAmountError):
            await h.reconciler.cancel_slot(h.db, "bk-g", SlotSelector(slot_index=0))
        assert h.gateway.requests == []


class TestBookingCancel:
    async def test_no_gateway_single_record(self) -> None:
        h = build(make_booking())

        outcome = await h.reconciler.cancel_booking(h.db, "bk-1")

        assert outcome.refunded_cents == 150000
        assert outcome.booking_deleted is True
        assert "bk-1" not in h.bookings.rows
        [record] = h.ledger.by_booking("bk-1")
        assert record.kind == RefundKind.BOOKING_CANCEL
        assert record.slot_signature == WHOLE_BOOKING_SIGNATURE
        assert len(record.meta["slots"]) == 3
        assert [r.amount_cents for r in await exported_rows(h)] == [50000, 50000, 50000]

    async def test_membership_restores_credit_per_slot(self) -> None:
        h = build(make_member_booking(), games_used=5)

        outcome = await h.reconciler.cancel_booking(h.db, "bk-m")

        assert outcome.refunded_cents == 0
        assert len(outcome.record_ids) == 3
        assert h.memberships.membership.games_used == 2
        assert all(r.membership_credit_restored for r in h.ledger.by_booking("bk-m"))
        assert "bk-m" not in h.bookings.rows

    async def test_gateway_success(self) -> None:
        h = build(make_online_booking())

        outcome = await h.reconciler.cancel_booking(h.db, "bk-g")

        assert outcome.refunded_cents == 90000
        assert outcome.refund_status == RefundStatus.SUCCESS
        assert [r.amount_cents for r in await exported_rows(h)] == [30000, 30000, 30000]
        assert h.journal == ["ledger.create", "commit", "bookings.delete_booking", "commit"]

    async def test_gateway_unconfirmed_keeps_booking(self) -> None:
        h = build(make_online_booking(), gateway=ScriptedGateway(create_status="PENDING"))

        with pytest.raises(RefundNotConfirmedError):
            await h.reconciler.cancel_booking(h.db, "bk-g")

        assert "bk-g" in h.bookings.rows
        assert h.ledger.rows == {}


class TestCancelGuards:
    async def test_booking_not_found(self) -> None:
        h = build()
        with pytest.raises(BookingNotFoundError):
            await h.reconciler.cancel_slot(h.db, "missing", SlotSelector(slot_index=0))

    async def test_slot_not_found(self) -> None:
        h = build(make_booking())
        with pytest.raises(SlotNotFoundError):
            await h.reconciler.cancel_slot(
                h.db, "bk-1", SlotSelector(court_id=9, start="06:00", end="07:00")
            )
        assert h.ledger.rows == {}

    async def test_index_out_of_range(self) -> None:
        h = build(make_booking())
        with pytest.raises(SlotNotFoundError):
            await h.reconciler.cancel_slot(h.db, "bk-1", SlotSelector(slot_index=3))

    async def test_lock_held(self) -> None:
        h = build(make_booking(), lock=held_lock)
        with pytest.raises(CancellationInProgressError):
            await h.reconciler.cancel_slot(h.db, "bk-1", SlotSelector(slot_index=0))
        assert len(h.bookings.rows["bk-1"].slots) == 3

    async def test_audit_failure_does_not_fail_cancel(self) -> None:
        h = build(make_booking())
        h.audit.export.side_effect = httpx.ConnectError("sheet down")

        outcome = await h.reconciler.cancel_slot(h.db, "bk-1", SlotSelector(slot_index=0))
        await h.reconciler.drain_exports()

        assert outcome.refunded_cents == 50000
        assert len(h.bookings.rows["bk-1"].slots) == 2
        h.audit.export.assert_awaited_once()

    async def test_slow_audit_export_does_not_hold_the_response(self) -> None:
        h = build(make_booking())
        release = asyncio.Event()

        async def stalled_export(rows) -> None:
            await release.wait()

        h.audit.export.side_effect = stalled_export

        outcome = await asyncio.wait_for(
            h.reconciler.cancel_slot(h.db, "bk-1", SlotSelector(slot_index=0)), timeout=1
        )
        assert outcome.refunded_cents == 50000
        assert len(h.bookings.rows["bk-1"].slots) == 2

        release.set()
        [row] = await exported_rows(h)
        assert row.amount_cents == 50000


def _registration(**kwargs) -> Registration:
    defaults = dict(
        id="reg-1", event_id="ev-1", currency="INR", admin_paid=False,
        event_title="Sunday Open", user_id="user-1", user_email="asha@example.com",
        user_name="Asha", order_id="order_r1", amount_cents=40000, entry_fee_cents=50000,
    )
    defaults.update(kwargs)
    return Registration(**defaults)


class TestRegistrationCancel:
    async def test_pending_refund_deletes_registration(self) -> None:
        h = build(gateway=ScriptedGateway(create_status="PENDING"),
                  registrations=(_registration(),))

        outcome = await h.reconciler.cancel_registration(h.db, "reg-1")

        assert outcome.refunded_cents == 50000
        assert outcome.refund_status == RefundStatus.PENDING
        assert outcome.gateway_refund_id == "cf-r-1"
        assert outcome.gateway_payment_id == "cf-p-1"
        assert "reg-1" not in h.registrations.rows
        [record] = h.ledger.rows.values()
        assert record.kind == RefundKind.REGISTRATION_CANCEL
        assert record.gateway == RefundGateway.GATEWAY
        assert record.status == RefundStatus.PENDING
        assert record.meta["event_title"] == "Sunday Open"

    async def test_falls_back_to_registration_amount(self) -> None:
        h = build(registrations=(_registration(entry_fee_cents=None),))
        outcome = await h.reconciler.cancel_registration(h.db, "reg-1")
        assert outcome.refunded_cents == 40000
        assert outcome.refund_status == RefundStatus.SUCCESS

    async def test_no_order_id(self) -> None:
        h = build(registrations=(_registration(order_id=None),))

        outcome = await h.reconciler.cancel_registration(h.db, "reg-1")

        assert outcome.refund_status == RefundStatus.NO_REFUND_REQUIRED
        assert h.gateway.requests == []
        assert "reg-1" not in h.registrations.rows
        [record] = h.ledger.rows.values()
        assert record.status_description == "No order id or zero fee"

    async def test_rejected_refund_keeps_registration(self) -> None:
        h = build(gateway=ScriptedGateway(create_status="CANCELLED"),
                  registrations=(_registration(),))

        with pytest.raises(RefundRejectedError) as exc_info:
            await h.reconciler.cancel_registration(h.db, "reg-1")

        assert exc_info.value.http_status == 502
        assert "reg-1" in h.registrations.rows
        [record] = h.ledger.rows.values()
        assert record.status == RefundStatus.FAILED

    async def test_not_found(self) -> None:
        h = build()
        with pytest.raises(RegistrationNotFoundError):
            await h.reconciler.cancel_registration(h.db, "reg-x")


class TestRefreshRefundStatus:
    async def _seed(self, h: Harness, status: RefundStatus) -> RefundRecord:
        return await h.ledger.create(
            h.db,
            RefundRecord(
                id="rf-p", kind=RefundKind.REGISTRATION_CANCEL, amount_cents=50000,
                currency="INR", status=status, gateway=RefundGateway.GATEWAY,
                registration_id="reg-1", order_id="order_r1", refund_id="refund_1",
            ),
        )

    async def test_promotes_pending(self) -> None:
        h = build(gateway=ScriptedGateway(poll_statuses=["SUCCESS"]))
        await self._seed(h, RefundStatus.PENDING)

        record = await h.reconciler.refresh_refund_status(h.db, "rf-p")

        assert record.status == RefundStatus.SUCCESS
        assert h.ledger.rows["rf-p"].status == RefundStatus.SUCCESS
        assert h.gateway.requests[0].url.path == "/pg/orders/order_r1/refunds/refund_1"

    async def test_still_pending(self) -> None:
        h = build(gateway=ScriptedGateway(poll_statuses=["PENDING"]))
        await self._seed(h, RefundStatus.PENDING)

        record = await h.reconciler.refresh_refund_status(h.db, "rf-p")

        assert record.status == RefundStatus.PENDING
        h.db.commit.assert_not_awaited()

    async def test_final_rows_are_not_polled(self) -> None:
        h = build()
        await self._seed(h, RefundStatus.SUCCESS)

        record = await h.reconciler.refresh_refund_status(h.db, "rf-p")

        assert record.status == RefundStatus.SUCCESS
        assert h.gateway.requests == []

    async def test_missing(self) -> None:
        h = build()
        with pytest.raises(RefundRecordNotFoundError):
            await h.reconciler.refresh_refund_status(h.db, "nope")
