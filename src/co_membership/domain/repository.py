"""Repository Protocol: dependency inversion for testability."""

from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.co_membership.domain.models import Membership


class MembershipRepositoryProtocol(Protocol):
    async def find_user_id(
        self, db: AsyncSession, email: str | None, username: str | None
    ) -> str | None: ...

    async def restore_credits(
        self, db: AsyncSession, user_id: str, count: int
    ) -> Membership | None: ...

    async def consume_credits(
        self, db: AsyncSession, user_id: str, count: int
    ) -> Membership | None: ...
