"""
Patient-initiated requests: appointment requests and emergency help.
"""

from typing import Optional
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from neomed.core.auth import require_patient
from neomed.core.errors import BadRequestError, NotFoundError
from neomed.core.logging import audit_logger
from neomed.db.session import get_db_session
from neomed.models import User, new_id, utcnow
from neomed.schemas import (
    AppointmentRequestCreate, AppointmentRequestResponse, DoctorSummary,
    EmergencyEnvelope, EmergencyRequestCreate, EmergencyRequestOut,
)
from neomed.services import emergency, tenant_data
from neomed.services.users import get_staff_user
from neomed.services.validators import normalize_brazil_phone

router = APIRouter(prefix="/patient", tags=["Patient"])


async def _linked_doctor(db: AsyncSession, patient: User) -> User:
    if not patient.doctor_id:
        raise BadRequestError("patient/missing-doctor-link", "Your account is not linked to a doctor.")
    doctor = await get_staff_user(db, patient.doctor_id)
    if doctor is None:
        raise NotFoundError("patient/doctor-not-found", "Linked doctor no longer exists.")
    return doctor


@router.post(
    "/appointments/request",
    response_model=AppointmentRequestResponse,
    status_code=status.HTTP_201_CREATED,
)
async def request_appointment(
    payload: AppointmentRequestCreate,
    patient: User = Depends(require_patient),
    db: AsyncSession = Depends(get_db_session)
):
    """Add a scheduled appointment to the linked doctor's agenda."""
    date = (payload.date or "").strip()
    time = (payload.time or "").strip()
    if not date or not time:
        raise BadRequestError("appointment/missing-fields", "date and time are required.")

    doctor = await _linked_doctor(db, patient)
    now = utcnow()
    appointment = {
        "id": new_id(),
        "patientId": patient.id,
        "date": date,
        "time": time,
        "reason": (payload.reason or "").strip(),
        "notes": (payload.notes or "").strip(),
        "status": "scheduled",
        "requestedByPatient": True,
        "createdAt": now.isoformat(),
    }
    await tenant_data.append_record(db, doctor.id, "appointments", appointment, now=now)
    await db.commit()

    audit_logger.log_user_action(
        user_id=patient.id,
        action="appointment_requested",
        entity="appointment",
        entity_id=appointment["id"],
        owner_id=doctor.id,
    )
    return {"appointment": appointment, "doctor": DoctorSummary.model_validate(doctor)}


@router.post("/emergency/request", response_model=EmergencyEnvelope)
async def request_emergency(
    payload: Optional[EmergencyRequestCreate] = None,
    patient: User = Depends(require_patient),
    db: AsyncSession = Depends(get_db_session)
):
    """Open (or refresh) the patient's emergency request."""
    payload = payload or EmergencyRequestCreate()
    phone = normalize_brazil_phone(payload.phone) or await emergency.profile_phone(db, patient)
    row = await emergency.request_emergency(db, patient, payload.message, phone=phone)
    return {"request": EmergencyRequestOut.model_validate(row)}


@router.get("/emergency/latest", response_model=EmergencyEnvelope)
async def latest_emergency(
    patient: User = Depends(require_patient),
    db: AsyncSession = Depends(get_db_session)
):
    row = await emergency.latest_for_patient(db, patient.id)
    return {"request": EmergencyRequestOut.model_validate(row) if row else None}
