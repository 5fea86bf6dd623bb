"""
Account registration and login.

Registration rules:

* the first account ever created is an admin, whatever role was asked for;
* the reserved admin email is always an admin;
* ``role="patient"`` needs a linked staff account and a complete, CPF-valid
  profile, which is also written into that doctor's ``patients`` document;
* a CPF already linked to another account in that document is a conflict;
* every other request creates a doctor account.
"""

from datetime import datetime
from typing import Any, Dict, Optional, Tuple
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from neomed.core.config import Settings
from neomed.core.errors import BadRequestError, ConflictError, NotFoundError, UnauthorizedError
from neomed.core.logging import audit_logger, get_logger
from neomed.core.security import SecurityManager
from neomed.models import User, UserRole, utcnow
from neomed.schemas import LoginRequest, RegisterRequest
from neomed.services import tenant_data
from neomed.services.profiles import PatientIdentity, linked_profile_for_cpf, upsert_profile
from neomed.services.users import (
    count_users,
    create_user,
    get_staff_user,
    get_user_by_email,
    heal_reserved_admin,
    touch_last_seen,
)
from neomed.services.validators import (
    format_cpf,
    is_valid_cpf,
    is_valid_email,
    normalize_brazil_phone,
    normalize_email,
)

logger = get_logger(__name__)

MIN_PASSWORD_LENGTH = 6

REQUIRED_PROFILE_FIELDS = ("name", "cpf", "phone", "dateOfBirth")


def _clean_profile(profile: Optional[Dict[str, Any]], name: str, email: str) -> Dict[str, Any]:
    """Normalise the submitted patient profile and check it is complete."""
    fields = dict(profile or {})
    fields["name"] = str(fields.get("name") or name or "").strip()
    fields["email"] = email
    fields["phone"] = normalize_brazil_phone(fields.get("phone"))
    fields["dateOfBirth"] = str(fields.get("dateOfBirth") or "").strip()

    cpf = fields.get("cpf")
    fields["cpf"] = format_cpf(cpf) if cpf else ""

    missing = [key for key in REQUIRED_PROFILE_FIELDS if not fields.get(key)]
    if missing:
        raise BadRequestError(
            "auth/incomplete-patient-profile",
            "Patient profile requires name, CPF, phone and date of birth.",
            extra={"missing": missing},
        )
    if not is_valid_cpf(fields["cpf"]):
        raise BadRequestError("auth/invalid-cpf", "CPF is invalid.")
    return fields


def _resolve_role(requested: Optional[str], email: str, is_first_user: bool, settings: Settings) -> str:
    if is_first_user or email == settings.admin_email:
        return UserRole.ADMIN.value
    if requested == UserRole.PATIENT.value:
        return UserRole.PATIENT.value
    return UserRole.DOCTOR.value


async def register(
    db: AsyncSession,
    security: SecurityManager,
    settings: Settings,
    payload: RegisterRequest,
    now: Optional[datetime] = None,
) -> Tuple[User, str]:
    """Create an account and return it with a session token."""
    now = now or utcnow()
    email = normalize_email(payload.email)
    password = payload.password or ""
    name = (payload.name or "").strip() or email.split("@")[0]

    if not is_valid_email(email):
        raise BadRequestError("auth/invalid-email", "A valid email address is required.")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise BadRequestError(
            "auth/weak-password",
            f"Password must have at least {MIN_PASSWORD_LENGTH} characters.",
        )
    if await get_user_by_email(db, email) is not None:
        raise ConflictError("auth/email-already-in-use", "Email is already registered.")

    is_first_user = await count_users(db) == 0
    role = _resolve_role(payload.role, email, is_first_user, settings)

    doctor = None
    profile = None
    if role == UserRole.PATIENT.value:
        if not payload.doctor_id:
            raise BadRequestError("auth/missing-doctor", "Patients must choose a doctor.")
        doctor = await get_staff_user(db, payload.doctor_id)
        if doctor is None:
            raise NotFoundError("auth/doctor-not-found", "Selected doctor does not exist.")
        profile = _clean_profile(payload.patient_profile, name, email)
        patients = await tenant_data.load_document(db, doctor.id, "patients")
        if linked_profile_for_cpf(patients, profile["cpf"]) is not None:
            raise ConflictError(
                "auth/cpf-already-linked",
                "This CPF already belongs to another patient account.",
            )

    try:
        user = await create_user(
            db,
            email=email,
            name=name,
            role=role,
            password_hash=security.hash_password(password),
            doctor_id=doctor.id if doctor else None,
            now=now,
        )
        if doctor is not None:
            identity = PatientIdentity.from_user(user, cpf=profile["cpf"])
            updated, _ = upsert_profile(patients, identity, profile, now)
            await tenant_data.save_document(db, doctor.id, "patients", updated, now=now)
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.warning("Registration lost a race on email", email=email)
        raise ConflictError("auth/email-already-in-use", "Email is already registered.")

    await db.refresh(user)
    audit_logger.log_user_action(
        user_id=user.id,
        action="user_registered",
        entity="user",
        entity_id=user.id,
        owner_id=user.doctor_id,
        details={"role": user.role, "first_user": is_first_user},
    )
    return user, security.create_session_token(user)


async def login(
    db: AsyncSession,
    security: SecurityManager,
    settings: Settings,
    payload: LoginRequest,
    ip_address: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Tuple[User, str]:
    email = normalize_email(payload.email)
    user = await get_user_by_email(db, email) if email else None

    if not security.verify_password(payload.password or "", user.password_hash if user else None):
        audit_logger.log_security_event(
            "login_failed",
            user_id=user.id if user else None,
            ip_address=ip_address,
            details={"email": email},
        )
        raise UnauthorizedError("auth/invalid-credentials", "Invalid email or password.")

    if heal_reserved_admin(user, settings):
        audit_logger.log_security_event("admin_role_restored", user_id=user.id, ip_address=ip_address)
    touch_last_seen(user, now)
    db.add(user)
    await db.commit()
    await db.refresh(user)

    audit_logger.log_user_action(user_id=user.id, action="login", entity="user", entity_id=user.id)
    return user, security.create_session_token(user)
