"""MembershipCreditService: the only writer of memberships.games_used.

Methods run inside the caller's transaction and never commit; the
cancellation reconciler and the admin endpoints below own the commit.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from src.co_common.errors import CreditResolutionFailedError, ValidationError
from src.co_membership.application.schemas import (
    CreditAdjustRequest,
    CreditAdjustResponse,
)
from src.co_membership.domain.repository import MembershipRepositoryProtocol
from src.co_membership.infrastructure.persistence import MembershipRepository

logger = logging.getLogger(__name__)


class MembershipCreditService:
    def __init__(self, repo: MembershipRepositoryProtocol | None = None) -> None:
        self._repo: MembershipRepositoryProtocol = repo or MembershipRepository()

    async def resolve_user(
        self, db: AsyncSession, email: str | None, username_hint: str | None = None
    ) -> str:
        """Map a booking's payer identity to users.id.

        Email (case-insensitive) or username; either is enough.
        Raises CreditResolutionFailedError when neither matches.
        """
        email = (email or "").strip().lower() or None
        username_hint = (username_hint or "").strip() or None
        if email is None and username_hint is None:
            raise CreditResolutionFailedError("no email or username on record")

        user_id = await self._repo.find_user_id(db, email, username_hint)
        if user_id is None:
            raise CreditResolutionFailedError(f"email={email} username={username_hint}")
        return user_id

    async def restore_one_credit(self, db: AsyncSession, user_id: str) -> bool:
        return await self.restore_credits(db, user_id, 1)

    async def restore_credits(self, db: AsyncSession, user_id: str, count: int) -> bool:
        """Give back `count` games, floor-clamped at 0.

        False when there is no PAID membership or games_used is already 0.
        """
        if not user_id:
            return False
        n = max(1, int(count))
        membership = await self._repo.restore_credits(db, user_id, n)
        if membership is None:
            logger.info("Credit restore was a no-op: user=%s count=%d", user_id, n)
            return False
        logger.info(
            "Credits restored: user=%s membership=%s count=%d games_used=%d/%d",
            user_id, membership.id, n, membership.games_used, membership.games,
        )
        return True

    async def consume_credits(self, db: AsyncSession, user_id: str, count: int) -> bool:
        """Use `count` games, ceiling-clamped at `games`."""
        if not user_id:
            return False
        n = max(1, int(count))
        membership = await self._repo.consume_credits(db, user_id, n)
        if membership is None:
            logger.info("Credit consume was a no-op: user=%s count=%d", user_id, n)
            return False
        logger.info(
            "Credits consumed: user=%s membership=%s count=%d games_used=%d/%d",
            user_id, membership.id, n, membership.games_used, membership.games,
        )
        return True


async def adjust_credits(
    service: MembershipCreditService,
    db: AsyncSession,
    req: CreditAdjustRequest,
    restore: bool,
) -> CreditAdjustResponse:
    """Admin restore/consume: resolve the member, adjust, commit."""
    if not req.email and not req.username:
        raise ValidationError("Need email or username to resolve membership")
    try:
        user_id = await service.resolve_user(db, req.email, req.username)
        if restore:
            changed = await service.restore_credits(db, user_id, req.count)
        else:
            changed = await service.consume_credits(db, user_id, req.count)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    return CreditAdjustResponse(user_id=user_id, changed=changed, count=req.count)
