"""CancellationReconciler: cancels slots, bookings and registrations.

Per booking, under a short Redis lock:
  1. load booking (account table, then guest table) and the target slot(s)
  2. classify: MEMBERSHIP | NO_GATEWAY | GATEWAY_PAID
  3. settle: ledger row (+ credit restore, or gateway refund + poll), commit
  4. mutate: pull slot(s) / decrement amount / delete when empty, commit
  5. audit export in a background task, best effort

Step 3 always commits before step 4 starts. A GATEWAY_PAID refund that is
not SUCCESS after the poll schedule raises RefundNotConfirmedError before any
ledger row or booking change, so the caller can simply retry.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Sequence
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from src.co_audit.domain.models import AuditExporter, CancellationRow
from src.co_audit.infrastructure.webhook_exporter import WebhookAuditExporter
from src.co_booking.domain.models import Booking, Slot
from src.co_booking.domain.repository import BookingRepositoryProtocol
from src.co_booking.infrastructure.persistence import BookingRepository
from src.co_cancellation.domain.models import (
    CancellationOutcome,
    RegistrationRefundOutcome,
    SlotSelector,
)
from src.co_cancellation.domain.policy import (
    booking_refund_cents,
    classify,
    slot_refund_cents,
)
from src.co_common.datetime_utils import utc_now
from src.co_common.enums import PaymentPath, RefundGateway, RefundKind, RefundStatus
from src.co_common.errors import (
    BookingNotFoundError,
    CreditResolutionFailedError,
    InvalidRefundAmountError,
    RefundNotConfirmedError,
    RefundRecordNotFoundError,
    RefundRejectedError,
    RegistrationNotFoundError,
)
from src.co_common.id_generator import generate_record_id
from src.co_common.locks import booking_lock
from src.co_common.money import allocate
from src.co_common.redis_client import get_redis
from src.co_membership.application.service import MembershipCreditService
from src.co_payment.domain.models import GatewayRefund
from src.co_payment.infrastructure.gateway_client import PaymentGatewayClient
from src.co_refund.domain.models import RefundRecord
from src.co_refund.domain.repository import RefundLedgerProtocol
from src.co_refund.infrastructure.persistence import RefundLedger
from src.co_registration.domain.models import Registration
from src.co_registration.domain.repository import RegistrationRepositoryProtocol
from src.co_registration.infrastructure.persistence import RegistrationRepository

logger = logging.getLogger(__name__)

LockFactory = Callable[[str], AbstractAsyncContextManager[None]]

# slot_signature for the single informational row of a whole-booking cancel
WHOLE_BOOKING_SIGNATURE = "*"

_ACCEPTED_REGISTRATION_STATUSES = ("SUCCESS", "PENDING")


@asynccontextmanager
async def redis_booking_lock(booking_id: str) -> AsyncIterator[None]:
    redis = await get_redis()
    async with booking_lock(redis, booking_id):
        yield


class CancellationReconciler:
    def __init__(
        self,
        bookings: BookingRepositoryProtocol | None = None,
        ledger: RefundLedgerProtocol | None = None,
        credits: MembershipCreditService | None = None,
        gateway: PaymentGatewayClient | None = None,
        audit: AuditExporter | None = None,
        registrations: RegistrationRepositoryProtocol | None = None,
        lock: LockFactory | None = None,
        poll_delays_ms: Sequence[int] | None = None,
    ) -> None:
        self._bookings: BookingRepositoryProtocol = bookings or BookingRepository()
        self._ledger: RefundLedgerProtocol = ledger or RefundLedger()
        self._credits = credits or MembershipCreditService()
        self._gateway = gateway or PaymentGatewayClient()
        self._audit: AuditExporter = audit or WebhookAuditExporter()
        self._registrations: RegistrationRepositoryProtocol = (
            registrations or RegistrationRepository()
        )
        self._lock: LockFactory = lock or redis_booking_lock
        self._poll_delays_ms = poll_delays_ms
        self._exports: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # Slot cancel
    # ------------------------------------------------------------------

    async def cancel_slot(
        self, db: AsyncSession, booking_id: str, selector: SlotSelector
    ) -> CancellationOutcome:
        async with self._lock(booking_id):
            booking = await self._load_booking(db, booking_id)
            slot = selector.resolve(booking)
            path = classify(booking)
            total_before = len(booking.slots)
            logger.info(
                "Cancelling slot: booking=%s variant=%s slot=%s path=%s slots=%d amount=%d",
                booking.id, booking.variant.value, slot.signature, path.value,
                total_before, booking.amount_cents,
            )

            if path == PaymentPath.MEMBERSHIP:
                refunded = 0
                status = RefundStatus.NO_REFUND_REQUIRED
                record_ids = await self._settle_membership(
                    db, booking, [slot], RefundKind.SLOT_CANCEL
                )
            elif path == PaymentPath.NO_GATEWAY:
                refunded = slot_refund_cents(booking)
                status = RefundStatus.NO_REFUND_REQUIRED
                record_ids = await self._settle_no_gateway(
                    db, booking, RefundKind.SLOT_CANCEL, refunded, slot
                )
            else:
                refunded = slot_refund_cents(booking)
                if refunded <= 0:
                    raise InvalidRefundAmountError(refunded)
                status = RefundStatus.SUCCESS
                record = await self._settle_gateway(
                    db, booking, RefundKind.SLOT_CANCEL, refunded, [slot],
                    note=f"Admin cancel booking slot for booking {booking.id}",
                )
                record_ids = [record.id]

            # Membership slots carry no monetary share
            delta = 0 if path == PaymentPath.MEMBERSHIP else refunded
            deleted = await self._remove_slot(db, booking, slot, delta)

        self._schedule_audit(booking, [slot], [refunded], status)
        return CancellationOutcome(
            booking_id=booking.id,
            path=path,
            refunded_cents=refunded,
            currency=booking.currency,
            refund_status=status,
            booking_deleted=deleted,
            record_ids=record_ids,
        )

    # ------------------------------------------------------------------
    # Whole-booking cancel
    # ------------------------------------------------------------------

    async def cancel_booking(self, db: AsyncSession, booking_id: str) -> CancellationOutcome:
        async with self._lock(booking_id):
            booking = await self._load_booking(db, booking_id)
            path = classify(booking)
            slots = list(booking.slots)
            logger.info(
                "Cancelling booking: booking=%s variant=%s path=%s slots=%d amount=%d",
                booking.id, booking.variant.value, path.value, len(slots), booking.amount_cents,
            )

            if path == PaymentPath.MEMBERSHIP:
                refunded = 0
                status = RefundStatus.NO_REFUND_REQUIRED
                record_ids = await self._settle_membership(
                    db, booking, slots, RefundKind.BOOKING_CANCEL
                )
            elif path == PaymentPath.NO_GATEWAY:
                refunded = booking_refund_cents(booking)
                status = RefundStatus.NO_REFUND_REQUIRED
                record_ids = await self._settle_no_gateway(
                    db, booking, RefundKind.BOOKING_CANCEL, refunded, None
                )
            else:
                refunded = booking_refund_cents(booking)
                if refunded <= 0:
                    raise InvalidRefundAmountError(refunded)
                status = RefundStatus.SUCCESS
                record = await self._settle_gateway(
                    db, booking, RefundKind.BOOKING_CANCEL, refunded, slots,
                    note=f"Admin cancel booking {booking.id}",
                )
                record_ids = [record.id]

            try:
                await self._bookings.delete_booking(db, booking.id, booking.variant)
                await db.commit()
            except Exception:
                await db.rollback()
                raise
            logger.info("Booking deleted: booking=%s variant=%s", booking.id, booking.variant.value)

        shares = allocate(refunded, len(slots)) if path != PaymentPath.MEMBERSHIP else [0] * len(slots)
        self._schedule_audit(booking, slots, shares, status)
        return CancellationOutcome(
            booking_id=booking.id,
            path=path,
            refunded_cents=refunded,
            currency=booking.currency,
            refund_status=status,
            booking_deleted=True,
            record_ids=record_ids,
        )

    # ------------------------------------------------------------------
    # Event registration cancel
    # ------------------------------------------------------------------

    async def cancel_registration(
        self, db: AsyncSession, registration_id: str
    ) -> RegistrationRefundOutcome:
        """Refund the entry fee (if paid online) and delete the registration.

        A gateway answer other than SUCCESS/PENDING is recorded as FAILED and
        raised as RefundRejectedError; the registration is kept.
        """
        async with self._lock(registration_id):
            registration = await self._registrations.get(db, registration_id)
            if registration is None:
                raise RegistrationNotFoundError(registration_id)

            amount = registration.refund_amount_cents
            created: GatewayRefund | None = None
            if registration.order_id and amount > 0:
                created = await self._gateway.create_refund(
                    registration.order_id, amount,
                    note=f"Admin cancel registration {registration.id}",
                )
                raw_status = (created.raw_status or "PENDING").upper()
                if raw_status not in _ACCEPTED_REGISTRATION_STATUSES:
                    failed = self._registration_record(
                        registration, amount, RefundStatus.FAILED, created
                    )
                    try:
                        await self._ledger.create(db, failed)
                        await db.commit()
                    except Exception:
                        await db.rollback()
                        raise
                    logger.warning(
                        "Registration refund rejected: registration=%s order=%s status=%s",
                        registration.id, registration.order_id, raw_status,
                    )
                    raise RefundRejectedError(raw_status, created.raw)
                status = RefundStatus(raw_status)
            else:
                status = RefundStatus.NO_REFUND_REQUIRED

            record = self._registration_record(registration, amount, status, created)
            try:
                await self._ledger.create(db, record)
                await self._registrations.delete(db, registration.id)
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        logger.info(
            "Registration cancelled: registration=%s refunded=%d status=%s",
            registration.id, amount, status.value,
        )
        return RegistrationRefundOutcome(
            registration_id=registration.id,
            refunded_cents=amount,
            currency=registration.currency,
            refund_status=status,
            gateway_refund_id=(created.gateway_refund_id or None) if created else None,
            gateway_payment_id=(created.gateway_payment_id or None) if created else None,
        )

    # ------------------------------------------------------------------
    # PENDING refund follow-up
    # ------------------------------------------------------------------

    async def refresh_refund_status(self, db: AsyncSession, record_id: str) -> RefundRecord:
        """Poll the gateway once for a PENDING gateway row and promote it."""
        record = await self._ledger.get(db, record_id)
        if record is None:
            raise RefundRecordNotFoundError(record_id)
        if (
            record.status != RefundStatus.PENDING
            or record.gateway != RefundGateway.GATEWAY
            or not record.order_id
            or not record.refund_id
        ):
            return record

        status = await self._gateway.poll_status(record.order_id, record.refund_id)
        if status == RefundStatus.PENDING:
            return record
        try:
            updated = await self._ledger.promote_status(db, record.id, status, None)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info("Refund status promoted: record=%s status=%s", record.id, status.value)
        return updated or record

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _load_booking(self, db: AsyncSession, booking_id: str) -> Booking:
        booking = await self._bookings.find_booking_across_variants(db, booking_id)
        if booking is None:
            raise BookingNotFoundError(booking_id)
        return booking

    def _booking_record(
        self,
        booking: Booking,
        kind: RefundKind,
        amount_cents: int,
        status: RefundStatus,
        reason: str,
        slots: list[Slot],
        signature: str | None = None,
    ) -> RefundRecord:
        meta: dict[str, Any] = {
            "date": booking.date.isoformat(),
            "payment_ref": booking.payment_ref,
            "total_slots_before": len(booking.slots),
        }
        if len(slots) == 1:
            meta["slot"] = slots[0].to_dict()
            meta["slot_signature"] = slots[0].signature
        else:
            meta["slots"] = [s.to_dict() for s in slots]
        return RefundRecord(
            id=generate_record_id(),
            kind=kind,
            booking_id=booking.id,
            booking_variant=booking.variant.value,
            user_id=booking.user_id,
            user_email=booking.user_email,
            user_name=booking.payer_name,
            amount_cents=amount_cents,
            currency=booking.currency,
            reason=reason,
            order_id=booking.order_id,
            status=status,
            slot_signature=signature,
            meta=meta,
        )

    async def _settle_membership(
        self,
        db: AsyncSession,
        booking: Booking,
        slots: list[Slot],
        kind: RefundKind,
    ) -> list[str]:
        """One NO_REFUND_REQUIRED row and one restored credit per slot.

        A slot whose (booking, signature) row already exists was settled by an
        earlier attempt and is skipped.
        """
        record_ids: list[str] = []
        try:
            for slot in slots:
                existing = await self._ledger.find_by_signature(
                    db, booking.variant.value, booking.id, slot.signature
                )
                if existing is not None:
                    logger.info("Membership slot already settled: booking=%s slot=%s record=%s",
                                booking.id, slot.signature, existing.id)
                    record_ids.append(existing.id)
                    continue

                record = self._booking_record(
                    booking, kind, 0, RefundStatus.NO_REFUND_REQUIRED,
                    reason="Membership slot cancel", slots=[slot], signature=slot.signature,
                )
                record.status_description = "Membership/free booking slot cancellation"
                created = await self._ledger.create_once(db, record)
                if created is None:
                    # Concurrent attempt inserted it first and owns the credit
                    logger.info("Membership slot settled concurrently: booking=%s slot=%s",
                                booking.id, slot.signature)
                    continue

                if await self._restore_credit(db, booking):
                    await self._ledger.mark_credit_restored(db, created.id)
                    created.membership_credit_restored = True
                record_ids.append(created.id)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        return record_ids

    async def _restore_credit(self, db: AsyncSession, booking: Booking) -> bool:
        try:
            user_id = booking.user_id or await self._credits.resolve_user(
                db, booking.user_email, booking.user_name
            )
        except CreditResolutionFailedError as exc:
            logger.warning("Membership credit not restored: booking=%s reason=%s",
                           booking.id, exc.message)
            return False
        return await self._credits.restore_one_credit(db, user_id)

    async def _settle_no_gateway(
        self,
        db: AsyncSession,
        booking: Booking,
        kind: RefundKind,
        amount_cents: int,
        slot: Slot | None,
    ) -> list[str]:
        """Informational NO_REFUND_REQUIRED row; no money moves."""
        slots = [slot] if slot is not None else list(booking.slots)
        signature = slot.signature if slot is not None else WHOLE_BOOKING_SIGNATURE
        record = self._booking_record(
            booking, kind, amount_cents, RefundStatus.NO_REFUND_REQUIRED,
            reason="Admin cancel (no gateway)", slots=slots, signature=signature,
        )
        record.status_description = "Cash/guest/admin booking: no gateway refund"
        try:
            created = await self._ledger.create_once(db, record)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        if created is None:
            logger.info("No-gateway cancel already recorded: booking=%s signature=%s",
                        booking.id, signature)
            return []
        return [created.id]

    async def _settle_gateway(
        self,
        db: AsyncSession,
        booking: Booking,
        kind: RefundKind,
        amount_cents: int,
        slots: list[Slot],
        note: str,
    ) -> RefundRecord:
        order_id = booking.order_id or ""
        created = await self._gateway.create_refund(order_id, amount_cents, note)
        status = await self._gateway.confirm_refund(order_id, created, self._poll_delays_ms)
        if status != RefundStatus.SUCCESS:
            logger.warning(
                "Refund not confirmed, booking left untouched: booking=%s order=%s refund=%s status=%s",
                booking.id, order_id, created.refund_id, status.value,
            )
            raise RefundNotConfirmedError(status.value, created.refund_id)

        record = self._booking_record(
            booking, kind, amount_cents, RefundStatus.SUCCESS,
            reason="Admin cancel slot" if kind == RefundKind.SLOT_CANCEL else "Admin cancel booking",
            slots=slots,
        )
        record.gateway = RefundGateway.GATEWAY
        record.refund_id = created.refund_id
        record.gateway_refund_id = created.gateway_refund_id or None
        record.gateway_payment_id = created.gateway_payment_id or None
        record.status_description = created.status_description or None
        try:
            saved = await self._ledger.create(db, record)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info("Gateway refund recorded: booking=%s refund=%s amount=%d",
                    booking.id, created.refund_id, amount_cents)
        return saved

    async def _remove_slot(
        self, db: AsyncSession, booking: Booking, slot: Slot, delta_cents: int
    ) -> bool:
        """Pull the slot (and its share); delete the booking once empty."""
        try:
            remaining = await self._bookings.remove_slot(
                db, booking.id, booking.variant, slot, delta_cents
            )
            if remaining == 0:
                await self._bookings.delete_if_empty(db, booking.id, booking.variant)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info("Slot removed: booking=%s slot=%s remaining=%d",
                    booking.id, slot.signature, remaining)
        return remaining == 0

    def _registration_record(
        self,
        registration: Registration,
        amount_cents: int,
        status: RefundStatus,
        created: GatewayRefund | None,
    ) -> RefundRecord:
        meta: dict[str, Any] = {"event_id": registration.event_id, "event_title": registration.event_title}
        if registration.order_id:
            meta["order_id"] = registration.order_id
        record = RefundRecord(
            id=generate_record_id(),
            kind=RefundKind.REGISTRATION_CANCEL,
            registration_id=registration.id,
            user_id=registration.user_id,
            user_email=registration.user_email,
            user_name=registration.user_name,
            amount_cents=amount_cents,
            currency=registration.currency,
            reason="Admin cancel registration",
            order_id=registration.order_id,
            status=status,
            meta=meta,
        )
        if created is None:
            record.status_description = "No order id or zero fee"
            return record
        record.gateway = RefundGateway.GATEWAY
        record.refund_id = created.refund_id
        record.gateway_refund_id = created.gateway_refund_id or None
        record.gateway_payment_id = created.gateway_payment_id or None
        record.status_description = created.status_description or None
        record.meta["raw"] = created.raw
        return record

    def _schedule_audit(
        self,
        booking: Booking,
        slots: list[Slot],
        amounts_cents: list[int],
        status: RefundStatus,
    ) -> None:
        """Build the audit rows now and export them without holding the response."""
        now = utc_now()
        rows = [
            CancellationRow(
                ts=now,
                date=booking.date.isoformat(),
                court_id=slot.court_id,
                start=slot.start,
                end=slot.end,
                payer_name=booking.payer_name,
                phone=booking.guest_phone or "",
                who=booking.payer_class,
                booking_type=booking.booking_type.value,
                payment_ref=booking.payment_ref,
                amount_cents=amount,
                currency=booking.currency,
                refund_status=status.value,
                note=f"booking={booking.id}",
                order_id=booking.order_id or "",
            )
            for slot, amount in zip(slots, amounts_cents)
        ]
        task = asyncio.create_task(self._export(booking.id, rows))
        self._exports.add(task)
        task.add_done_callback(self._exports.discard)

    async def _export(self, booking_id: str, rows: list[CancellationRow]) -> None:
        try:
            await self._audit.export(rows)
        except Exception:
            logger.exception("Cancellation audit export failed: booking=%s", booking_id)

    async def drain_exports(self) -> None:
        """Wait for audit exports still in flight."""
        if self._exports:
            await asyncio.gather(*list(self._exports))
