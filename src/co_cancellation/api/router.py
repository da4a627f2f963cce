"""co_cancellation REST API: slot/booking/registration cancellation."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.co_cancellation.application.schemas import (
    BookingCancelResponse,
    RegistrationRefundResponse,
    SlotCancelRequest,
    SlotCancelResponse,
)
from src.co_cancellation.application.service import CancellationReconciler
from src.co_common.database import get_db_session
from src.co_common.response import ApiResponse, success_response
from src.co_refund.application.schemas import RefundItem

router = APIRouter(tags=["cancellation"])

_reconciler: CancellationReconciler | None = None


def get_reconciler() -> CancellationReconciler:
    global _reconciler  # noqa: PLW0603
    if _reconciler is None:
        _reconciler = CancellationReconciler()
    return _reconciler


async def drain_reconciler() -> None:
    """Let background audit exports finish before the app shuts down."""
    if _reconciler is not None:
        await _reconciler.drain_exports()


@router.delete("/bookings/{booking_id}/slots")
async def cancel_slot(
    booking_id: str,
    body: SlotCancelRequest,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    reconciler: Annotated[CancellationReconciler, Depends(get_reconciler)],
    request: Request,
) -> ApiResponse:
    outcome = await reconciler.cancel_slot(db, booking_id, body.to_selector())
    resp = success_response(SlotCancelResponse.from_outcome(outcome).model_dump(by_alias=True))
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.delete("/bookings/{booking_id}")
async def cancel_booking(
    booking_id: str,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    reconciler: Annotated[CancellationReconciler, Depends(get_reconciler)],
    request: Request,
) -> ApiResponse:
    outcome = await reconciler.cancel_booking(db, booking_id)
    resp = success_response(BookingCancelResponse.from_outcome(outcome).model_dump(by_alias=True))
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.post("/registrations/{registration_id}/refund")
async def refund_registration(
    registration_id: str,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    reconciler: Annotated[CancellationReconciler, Depends(get_reconciler)],
    request: Request,
) -> ApiResponse:
    outcome = await reconciler.cancel_registration(db, registration_id)
    data = RegistrationRefundResponse.from_outcome(outcome)
    resp = success_response(data.model_dump(by_alias=True))
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.post("/refunds/{refund_id}/refresh")
async def refresh_refund(
    refund_id: str,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    reconciler: Annotated[CancellationReconciler, Depends(get_reconciler)],
    request: Request,
) -> ApiResponse:
    record = await reconciler.refresh_refund_status(db, refund_id)
    resp = success_response(RefundItem.from_record(record).model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp
