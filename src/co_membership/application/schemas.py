"""Pydantic schemas for co_membership API."""

from pydantic import BaseModel, Field


class CreditAdjustRequest(BaseModel):
    email: str | None = None
    username: str | None = None
    count: int = Field(1, ge=1, le=100, description="Number of games to adjust")


class CreditAdjustResponse(BaseModel):
    ok: bool = True
    user_id: str
    changed: bool
    count: int
