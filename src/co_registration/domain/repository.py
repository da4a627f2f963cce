"""Repository Protocol for registrations."""

from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.co_registration.domain.models import Registration


class RegistrationRepositoryProtocol(Protocol):
    async def get(self, db: AsyncSession, registration_id: str) -> Registration | None: ...

    async def delete(self, db: AsyncSession, registration_id: str) -> bool: ...

    async def mark_paid(self, db: AsyncSession, registration_id: str) -> bool: ...
