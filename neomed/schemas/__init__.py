"""
Pydantic schemas for request/response models.

The wire format is camelCase; attributes are snake_case and fill from either.
"""

from datetime import datetime
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# Base schemas
class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        alias_generator=to_camel,
        use_enum_values=True,
    )


class SuccessResponse(BaseSchema):
    success: bool = True


class MessageResponse(SuccessResponse):
    message: str


# Auth schemas
class RegisterRequest(BaseSchema):
    """Registration request; validated by the accounts service to return specific error codes."""
    email: str = ""
    password: str = ""
    name: Optional[str] = None
    role: Optional[str] = None
    doctor_id: Optional[str] = None
    patient_profile: Optional[Dict[str, Any]] = None


class LoginRequest(BaseSchema):
    """Login request schema."""
    email: str = ""
    password: str = ""


class UserPublic(BaseSchema):
    """User as returned to clients."""
    id: str
    email: str
    name: str
    role: str
    doctor_id: Optional[str] = None
    created_at: Optional[datetime] = None
    last_seen_at: Optional[datetime] = None
    online: bool = False


class UserEnvelope(SuccessResponse):
    user: UserPublic


class AuthResponse(UserEnvelope):
    """User plus a freshly signed session token."""
    token: str


class UserListResponse(SuccessResponse):
    users: List[UserPublic]


class UserCountResponse(SuccessResponse):
    count: int


class DoctorSummary(BaseSchema):
    id: str
    name: str
    email: str
    role: str


class DoctorListResponse(SuccessResponse):
    doctors: List[DoctorSummary]


# Patient-initiated requests
class AppointmentRequestCreate(BaseSchema):
    date: Optional[str] = None
    time: Optional[str] = None
    reason: Optional[str] = None
    notes: Optional[str] = None


class AppointmentRequestResponse(SuccessResponse):
    appointment: Dict[str, Any]
    doctor: DoctorSummary


class EmergencyRequestCreate(BaseSchema):
    message: Optional[str] = None
    phone: Optional[str] = None


class EmergencyRequestOut(BaseSchema):
    id: str
    patient_id: str
    doctor_id: Optional[str] = None
    patient_name: str = ""
    patient_email: str = ""
    patient_phone: Optional[str] = None
    message: str = ""
    status: str
    attending_doctor_id: Optional[str] = None
    attending_doctor_name: Optional[str] = None
    attending_doctor_email: Optional[str] = None
    video_call_url: Optional[str] = None
    video_call_provider: Optional[str] = None
    video_call_started_at: Optional[datetime] = None
    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    patient_online: Optional[bool] = None


class EmergencyEnvelope(SuccessResponse):
    request: Optional[EmergencyRequestOut] = None


class EmergencyListResponse(SuccessResponse):
    requests: List[EmergencyRequestOut]


class StartVideoRequest(BaseSchema):
    call_url: Optional[str] = None


# Mevo integration
class SignatureSessionRequest(BaseSchema):
    provider: str = ""


class SignatureSession(BaseSchema):
    provider: str
    provider_label: str
    session_id: str
    auth_url: str
    embed_url: str
    callback_url: str
    expires_at: datetime
    mode: str


class SignatureSessionResponse(SuccessResponse):
    session: SignatureSession


class MevoEmitRequest(BaseSchema):
    document_type: str = ""
    prescription_id: str = ""
    patient_id: Optional[str] = None
    prescription: Optional[Dict[str, Any]] = None
    patient: Optional[Dict[str, Any]] = None


class MevoDocumentOut(BaseSchema):
    id: str
    user_id: str
    prescription_id: str
    patient_id: Optional[str] = None
    document_type: str
    status: str
    provider_name: str
    provider_document_id: Optional[str] = None
    provider_token: Optional[str] = None
    provider_payload: Dict[str, Any] = Field(default_factory=dict)
    raw_response: Optional[Any] = None
    error_message: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class MevoEmitResponse(SuccessResponse):
    mode: str
    document: MevoDocumentOut


class MevoDocumentListResponse(SuccessResponse):
    documents: List[MevoDocumentOut]


# Tenant data
class AllDataResponse(SuccessResponse):
    patients: List[Any] = Field(default_factory=list)
    prescriptions: List[Any] = Field(default_factory=list)
    appointments: List[Any] = Field(default_factory=list)
    medical_records: List[Any] = Field(default_factory=list)


class DataResponse(SuccessResponse):
    data: List[Any]
