"""
Emergency request tracker.

One row per help request. A patient has at most one ``open`` row at a time,
enforced by the partial unique index on ``emergency_requests``; ``resolved``
is terminal. A request counts as claimed once a staff member starts a video
call on it.
"""

from datetime import datetime, timedelta
from typing import List, Optional, Tuple
from sqlalchemy import select, text
from sqlalchemy.ext.asyncio import AsyncSession

from neomed.core.config import Settings
from neomed.core.errors import ConflictError, NotFoundError
from neomed.core.logging import audit_logger, get_logger
from neomed.db.base import dialect_insert
from neomed.models import EmergencyRequest, EmergencyStatus, User, new_id, utcnow
from neomed.services import tenant_data
from neomed.services.profiles import PatientIdentity, find_profile, upsert_profile
from neomed.services.users import get_user, is_online
from neomed.services.video_call import build_video_call_url, room_slug

logger = get_logger(__name__)

DEFAULT_MESSAGE = "Solicitação de atendimento de emergência"

OPEN_ONLY = text("status = 'open'")


class EmergencyNotFoundError(NotFoundError):
    default_code = "emergency/not-found"
    default_message = "Emergency request not found."


class AlreadyResolvedError(ConflictError):
    default_code = "emergency/already-resolved"
    default_message = "Emergency request is already resolved."


async def get_request(db: AsyncSession, request_id: str) -> Optional[EmergencyRequest]:
    result = await db.execute(
        select(EmergencyRequest)
        .where(EmergencyRequest.id == request_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def profile_phone(db: AsyncSession, patient: User) -> str:
    """Phone from the patient's profile in the linked doctor's list, if any."""
    if not patient.doctor_id:
        return ""
    patients = await tenant_data.load_document(db, patient.doctor_id, "patients")
    _, record = find_profile(patients, PatientIdentity.from_user(patient))
    return str((record or {}).get("phone") or "")


async def request_emergency(
    db: AsyncSession,
    patient: User,
    message: Optional[str],
    phone: Optional[str] = None,
    now: Optional[datetime] = None,
) -> EmergencyRequest:
    """Open a request for ``patient`` or refresh the one already open.

    The refresh only touches the doctor link, contact fields, message and
    ``updated_at``; a claimed request keeps its attending doctor and video room.
    """
    now = now or utcnow()
    values = {
        "doctor_id": patient.doctor_id,
        "patient_name": patient.name,
        "patient_email": patient.email,
        "patient_phone": phone or None,
        "message": (message or "").strip() or DEFAULT_MESSAGE,
        "updated_at": now,
    }
    stmt = dialect_insert(db, EmergencyRequest).values(
        id=new_id(),
        patient_id=patient.id,
        status=EmergencyStatus.OPEN.value,
        created_at=now,
        **values,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["patient_id"],
        index_where=OPEN_ONLY,
        set_={key: getattr(stmt.excluded, key) for key in values},
    ).returning(EmergencyRequest.id)
    request_id = (await db.execute(stmt)).scalar_one()
    await db.commit()

    # By id: staff may resolve the row before it is read back
    request = await get_request(db, request_id)
    audit_logger.log_user_action(
        user_id=patient.id,
        action="emergency_requested",
        entity="emergency_request",
        entity_id=request.id,
        owner_id=patient.doctor_id,
    )
    return request


async def latest_for_patient(db: AsyncSession, patient_id: str) -> Optional[EmergencyRequest]:
    result = await db.execute(
        select(EmergencyRequest)
        .where(EmergencyRequest.patient_id == patient_id)
        .order_by(EmergencyRequest.updated_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_active(
    db: AsyncSession,
    now: Optional[datetime] = None,
    window: timedelta = timedelta(seconds=120),
) -> List[Tuple[EmergencyRequest, User]]:
    """Open requests whose patient was seen within ``window``, newest first.

    Requests of silent patients stay open; they are only hidden here.
    """
    now = now or utcnow()
    result = await db.execute(
        select(EmergencyRequest, User)
        .join(User, User.id == EmergencyRequest.patient_id)
        .where(
            EmergencyRequest.status == EmergencyStatus.OPEN.value,
            User.last_seen_at.is_not(None),
            User.last_seen_at >= now - window,
        )
        .order_by(EmergencyRequest.updated_at.desc())
    )
    return [(request, patient) for request, patient in result.all() if is_online(patient.last_seen_at, now, window)]


async def _known_profile(db: AsyncSession, owner_ids: List[str], identity: PatientIdentity) -> dict:
    for owner_id in owner_ids:
        if not owner_id:
            continue
        patients = await tenant_data.load_document(db, owner_id, "patients")
        _, record = find_profile(patients, identity)
        if record:
            return dict(record)
    return {}


async def _record_patient_for_doctor(
    db: AsyncSession,
    request: EmergencyRequest,
    doctor: User,
    now: datetime,
) -> None:
    """Give the claiming doctor a durable profile of the patient."""
    patient = await get_user(db, request.patient_id)
    identity = PatientIdentity(
        user_id=request.patient_id,
        email=(patient.email if patient else request.patient_email) or "",
    )
    known = await _known_profile(db, [doctor.id, request.doctor_id], identity)
    fields = {
        **known,
        "name": known.get("name") or request.patient_name,
        "email": known.get("email") or request.patient_email,
        "phone": known.get("phone") or request.patient_phone or "",
    }

    patients = await tenant_data.load_document(db, doctor.id, "patients")
    updated, _ = upsert_profile(patients, identity, fields, now)
    await tenant_data.save_document(db, doctor.id, "patients", updated, now=now)


async def start_video(
    db: AsyncSession,
    request_id: str,
    doctor: User,
    settings: Settings,
    call_url: Optional[str] = None,
    now: Optional[datetime] = None,
) -> EmergencyRequest:
    now = now or utcnow()
    request = await get_request(db, request_id)
    if request is None:
        raise EmergencyNotFoundError()
    if request.status == EmergencyStatus.RESOLVED.value:
        raise AlreadyResolvedError()

    url = (call_url or "").strip() or request.video_call_url
    if not url:
        url = build_video_call_url(room_slug(request.id), settings.video_call_base_url)

    request.attending_doctor_id = doctor.id
    request.attending_doctor_name = doctor.name
    request.attending_doctor_email = doctor.email
    request.video_call_provider = settings.video_call_provider
    request.video_call_url = url
    request.video_call_started_at = now
    request.updated_at = now
    db.add(request)

    await _record_patient_for_doctor(db, request, doctor, now)
    await db.commit()
    await db.refresh(request)

    audit_logger.log_user_action(
        user_id=doctor.id,
        action="emergency_video_started",
        entity="emergency_request",
        entity_id=request.id,
        details={"patient_id": request.patient_id},
    )
    return request


async def resolve(
    db: AsyncSession,
    request_id: str,
    identity: User,
    now: Optional[datetime] = None,
) -> EmergencyRequest:
    """Close a request. Resolving an already resolved request returns it unchanged."""
    request = await get_request(db, request_id)
    if request is None:
        raise EmergencyNotFoundError()
    if request.status == EmergencyStatus.RESOLVED.value:
        return request

    now = now or utcnow()
    request.status = EmergencyStatus.RESOLVED.value
    request.resolved_by = identity.id
    request.resolved_at = now
    request.updated_at = now
    db.add(request)
    await db.commit()
    await db.refresh(request)

    audit_logger.log_user_action(
        user_id=identity.id,
        action="emergency_resolved",
        entity="emergency_request",
        entity_id=request.id,
    )
    return request
