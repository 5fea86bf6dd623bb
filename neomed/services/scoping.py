"""
Which tenant documents an authenticated identity may read or write.
"""

from typing import Any, Dict, List, Mapping, Optional
from sqlalchemy.ext.asyncio import AsyncSession

from neomed.core.errors import ForbiddenError
from neomed.models import User, UserRole
from neomed.services import tenant_data
from neomed.services.profiles import PatientIdentity, matches_identity


def requested_owner_id(
    body: Optional[Mapping[str, Any]],
    query: Optional[Mapping[str, Any]],
    headers: Optional[Mapping[str, Any]],
) -> Optional[str]:
    """Target user id from the body, then the query string, then the ``X-User-Id`` header."""
    for source, key in ((body, "userId"), (query, "userId"), (headers, "x-user-id")):
        if isinstance(source, Mapping):
            value = source.get(key)
            if value:
                return str(value)
    return None


def resolve_owner_id(identity: User, requested_id: Optional[str]) -> str:
    """Effective owner of the documents to read or write.

    Admins may act on any user id; everybody else only on their own.
    """
    if identity.role == UserRole.ADMIN.value:
        return requested_id or identity.id
    if requested_id and requested_id != identity.id:
        raise ForbiddenError(
            "auth/forbidden-target",
            "You can only access your own data.",
        )
    return identity.id


def ensure_staff_write(identity: User) -> None:
    if identity.role == UserRole.PATIENT.value:
        raise ForbiddenError(
            "auth/patient-readonly",
            "Patients cannot write clinic data directly.",
        )


def project_for_patient(doctor_data: Dict[str, List[Any]], patient: User) -> Dict[str, List[Any]]:
    """Filter a doctor's documents down to what one patient may see."""
    identity = PatientIdentity.from_user(patient)

    def own(records: List[Any]) -> List[Any]:
        return [r for r in records if isinstance(r, dict) and str(r.get("patientId") or "") == patient.id]

    return {
        "patients": [r for r in doctor_data.get("patients", []) if matches_identity(r, identity)],
        "prescriptions": own(doctor_data.get("prescriptions", [])),
        "appointments": own(doctor_data.get("appointments", [])),
        # Clinical notes are never exposed through the patient projection
        "medicalRecords": [],
    }


async def build_patient_projection(db: AsyncSession, patient: User) -> Dict[str, List[Any]]:
    if not patient.doctor_id:
        return tenant_data.empty_collections()
    doctor_data = await tenant_data.load_all(db, patient.doctor_id)
    return project_for_patient(doctor_data, patient)
