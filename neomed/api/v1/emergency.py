"""
Staff side of emergency requests: live queue, video hand-off and resolution.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from neomed.core.auth import require_staff
from neomed.db.session import get_context, get_db_session
from neomed.models import User, utcnow
from neomed.schemas import EmergencyEnvelope, EmergencyListResponse, EmergencyRequestOut, StartVideoRequest
from neomed.services import emergency

router = APIRouter(prefix="/doctor/emergency", tags=["Emergency"])


@router.get("/requests", response_model=EmergencyListResponse)
async def active_requests(
    request: Request,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db_session)
):
    """Open requests from patients that are online right now."""
    window = get_context(request).settings.liveness_window
    rows = await emergency.list_active(db, now=utcnow(), window=window)

    items = []
    for row, _patient in rows:
        out = EmergencyRequestOut.model_validate(row)
        out.patient_online = True
        items.append(out)
    return {"requests": items}


@router.post("/{request_id}/start-video", response_model=EmergencyEnvelope)
async def start_video(
    request_id: str,
    request: Request,
    payload: Optional[StartVideoRequest] = None,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db_session)
):
    """Claim the request and attach a video room to it."""
    settings = get_context(request).settings
    call_url = payload.call_url if payload else None
    row = await emergency.start_video(db, request_id, user, settings, call_url=call_url)
    return {"request": EmergencyRequestOut.model_validate(row)}


@router.post("/{request_id}/resolve", response_model=EmergencyEnvelope)
async def resolve(
    request_id: str,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db_session)
):
    row = await emergency.resolve(db, request_id, user)
    return {"request": EmergencyRequestOut.model_validate(row)}
