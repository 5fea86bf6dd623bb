"""
Unauthenticated endpoints: health checks and the doctor directory.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from neomed.db.base import check_database_health
from neomed.db.session import get_context, get_db_session
from neomed.schemas import DoctorListResponse, DoctorSummary
from neomed.services.users import list_doctors

router = APIRouter(tags=["Public"])


@router.get("/health")
async def health_check():
    """Liveness probe; does not touch the database."""
    return {"success": True, "ok": True}


@router.get("/health/detailed")
async def detailed_health_check(request: Request):
    """Health check including database connectivity."""
    context = get_context(request)
    db_health = await check_database_health(context)
    healthy = db_health["status"] == "healthy"
    return {
        "success": healthy,
        "ok": healthy,
        "version": context.settings.app_version,
        "environment": context.settings.app_env,
        "services": {"database": db_health},
        "timestamp": db_health["timestamp"],
    }


@router.get("/public/doctors", response_model=DoctorListResponse)
async def public_doctors(db: AsyncSession = Depends(get_db_session)):
    """Directory used by the patient sign-up form (admins and doctors only)."""
    doctors = await list_doctors(db)
    return {"doctors": [DoctorSummary.model_validate(doctor) for doctor in doctors]}
