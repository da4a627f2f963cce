"""co_booking REST API: admin bookkeeping endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.co_booking.application.service import BookingApplicationService
from src.co_common.database import get_db_session
from src.co_common.response import ApiResponse, success_response

router = APIRouter(prefix="/bookings", tags=["bookings"])

_service = BookingApplicationService()


@router.patch("/{booking_id}/mark-paid")
async def mark_booking_paid(
    booking_id: str,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.mark_paid(db, booking_id)
    resp = success_response(data.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp
