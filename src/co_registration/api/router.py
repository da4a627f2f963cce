"""co_registration REST API: admin bookkeeping endpoints."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.co_common.database import get_db_session
from src.co_common.response import ApiResponse, success_response
from src.co_registration.application.service import RegistrationApplicationService

router = APIRouter(prefix="/registrations", tags=["registrations"])

_service = RegistrationApplicationService()


@router.patch("/{registration_id}/mark-paid")
async def mark_registration_paid(
    registration_id: str,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.mark_paid(db, registration_id)
    resp = success_response(data.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp
