"""co_membership REST API: manual credit restore/consume for admins."""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.co_common.database import get_db_session
from src.co_common.response import ApiResponse, success_response
from src.co_membership.application.schemas import CreditAdjustRequest
from src.co_membership.application.service import MembershipCreditService, adjust_credits

router = APIRouter(prefix="/memberships", tags=["memberships"])

_service = MembershipCreditService()


@router.post("/credits/restore")
async def restore_credits(
    body: CreditAdjustRequest,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await adjust_credits(_service, db, body, restore=True)
    resp = success_response(data.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.post("/credits/consume")
async def consume_credits(
    body: CreditAdjustRequest,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await adjust_credits(_service, db, body, restore=False)
    resp = success_response(data.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp
