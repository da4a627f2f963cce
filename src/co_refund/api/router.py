"""co_refund REST API: refund ledger listing."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.co_common.database import get_db_session
from src.co_common.response import ApiResponse, success_response
from src.co_refund.application.service import RefundQueryService

router = APIRouter(prefix="/refunds", tags=["refunds"])

_service = RefundQueryService()


@router.get("")
async def list_refunds(
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
    cursor: str | None = Query(None, description="Pagination cursor (opaque Base64)"),
    limit: int = Query(20, ge=1, le=100, description="Items per page"),
    kind: str | None = Query(None, description="Filter by RefundKind"),
) -> ApiResponse:
    data = await _service.list_refunds(db, cursor, limit, kind)
    resp = success_response(data.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


@router.get("/{refund_id}")
async def get_refund(
    refund_id: str,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    request: Request,
) -> ApiResponse:
    data = await _service.get_refund(db, refund_id)
    resp = success_response(data.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp
