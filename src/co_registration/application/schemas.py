"""Pydantic schemas for co_registration API."""

from pydantic import BaseModel


class RegistrationMarkPaidResponse(BaseModel):
    ok: bool = True
    already: bool = False
    registration_id: str
