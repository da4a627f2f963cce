"""RegistrationApplicationService: admin bookkeeping on registrations.

Refund-on-cancel lives in co_cancellation.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from src.co_common.errors import RegistrationNotFoundError
from src.co_registration.application.schemas import RegistrationMarkPaidResponse
from src.co_registration.domain.repository import RegistrationRepositoryProtocol
from src.co_registration.infrastructure.persistence import RegistrationRepository

logger = logging.getLogger(__name__)


class RegistrationApplicationService:
    def __init__(self, repo: RegistrationRepositoryProtocol | None = None) -> None:
        self._repo: RegistrationRepositoryProtocol = repo or RegistrationRepository()

    async def mark_paid(
        self, db: AsyncSession, registration_id: str
    ) -> RegistrationMarkPaidResponse:
        registration = await self._repo.get(db, registration_id)
        if registration is None:
            raise RegistrationNotFoundError(registration_id)
        if registration.admin_paid:
            return RegistrationMarkPaidResponse(already=True, registration_id=registration.id)

        try:
            changed = await self._repo.mark_paid(db, registration.id)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.info("Registration marked paid: id=%s changed=%s", registration.id, changed)
        return RegistrationMarkPaidResponse(already=not changed, registration_id=registration.id)
