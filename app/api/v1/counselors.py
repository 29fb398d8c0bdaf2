"""Counselor directory endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import (
    get_counselor_directory,
    get_current_principal,
    get_db,
    get_realtime_relay,
    require_counselor,
)
from app.models.counselor import CounselorStatus
from app.schemas.counselor import (
    CounselorStatusResponse,
    CounselorStatusUpdate,
    CounselorSummary,
)
from app.services.auth import Principal
from app.services.chat.directory import CounselorDirectory
from app.services.realtime.relay import RealtimeRelay

router = APIRouter(prefix="/counselors", tags=["counselors"])


@router.get("/available", response_model=list[CounselorSummary])
async def list_available(
    principal: Principal = Depends(get_current_principal),
    directory: CounselorDirectory = Depends(get_counselor_directory),
) -> list[CounselorSummary]:
    """Counselors that could take a new session right now."""
    counselors = await directory.list_available()
    return [CounselorSummary.model_validate(c) for c in counselors]


@router.put("/me/status", response_model=CounselorStatusResponse)
async def update_status(
    body: CounselorStatusUpdate,
    principal: Principal = Depends(require_counselor),
    db: AsyncSession = Depends(get_db),
    directory: CounselorDirectory = Depends(get_counselor_directory),
    relay: RealtimeRelay = Depends(get_realtime_relay),
) -> CounselorStatusResponse:
    counselor = await directory.set_status(principal.id, body.status)
    await db.commit()

    event = (
        "counselor:offline"
        if counselor.status == CounselorStatus.OFFLINE.value
        else "counselor:online"
    )
    await relay.broadcast(event, {"counselor_id": counselor.id})
    return CounselorStatusResponse.model_validate(counselor)
