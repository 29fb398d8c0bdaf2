"""Counselor directory: eligibility for matching and self-managed status."""

from __future__ import annotations

from collections.abc import Sequence
from uuid import UUID

import structlog
from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import CounselorBusyError, ForbiddenError
from app.models.counselor import Counselor, CounselorStatus

logger = structlog.get_logger(__name__)


def eligible_counselors() -> Select[tuple[Counselor]]:
    """Counselors that may be matched right now, least busy first.

    Ties on total_sessions are broken by id so selection is deterministic.
    """
    return (
        select(Counselor)
        .where(
            Counselor.is_online.is_(True),
            Counselor.status == CounselorStatus.AVAILABLE.value,
            Counselor.is_active.is_(True),
        )
        .order_by(Counselor.total_sessions.asc(), Counselor.id.asc())
    )


class CounselorDirectory:
    """Reads and updates counselor availability records."""

    def __init__(self, db: AsyncSession) -> None:
        self._db = db

    async def list_available(self) -> Sequence[Counselor]:
        result = await self._db.execute(eligible_counselors())
        return result.scalars().all()

    async def set_status(self, counselor_id: UUID, status: str) -> Counselor:
        """Toggle a counselor between available and offline.

        busy belongs to the matcher: a counselor holding a session cannot
        change status until that session ends.
        """
        if status not in (CounselorStatus.AVAILABLE.value, CounselorStatus.OFFLINE.value):
            raise ForbiddenError("Counselor status busy is managed by the system")

        result = await self._db.execute(
            select(Counselor).where(Counselor.id == counselor_id).with_for_update()
        )
        counselor = result.scalar_one()
        if counselor.status == CounselorStatus.BUSY.value:
            raise CounselorBusyError()

        counselor.status = status
        counselor.is_online = status != CounselorStatus.OFFLINE.value
        await self._db.flush()

        logger.info(
            "counselor_status_changed",
            counselor_id=str(counselor_id),
            status=status,
        )
        return counselor
