"""
Core database models for NeoMed.
"""

from enum import Enum

from neomed.models.database import (
    User,
    TenantDocument,
    EmergencyRequest,
    MevoDocument,
    utcnow,
    new_id,
)


class UserRole(str, Enum):
    ADMIN = "admin"
    DOCTOR = "doctor"
    NURSE = "nurse"
    RECEPTIONIST = "receptionist"
    PATIENT = "patient"


# Roles with direct (non-projected) access to a tenant document
STAFF_ROLES = frozenset({
    UserRole.ADMIN.value,
    UserRole.DOCTOR.value,
    UserRole.NURSE.value,
    UserRole.RECEPTIONIST.value,
})

# Roles listed in the public doctor directory
DIRECTORY_ROLES = (UserRole.ADMIN.value, UserRole.DOCTOR.value)


class EmergencyStatus(str, Enum):
    OPEN = "open"
    RESOLVED = "resolved"


class MevoDocumentType(str, Enum):
    PRESCRIPTION = "prescription"
    CERTIFICATE = "certificate"


DATA_TYPES = ("patients", "prescriptions", "appointments", "medicalRecords")


__all__ = [
    "User",
    "TenantDocument",
    "EmergencyRequest",
    "MevoDocument",
    "UserRole",
    "STAFF_ROLES",
    "DIRECTORY_ROLES",
    "EmergencyStatus",
    "MevoDocumentType",
    "DATA_TYPES",
    "utcnow",
    "new_id",
]
