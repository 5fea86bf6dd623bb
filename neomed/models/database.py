"""
SQLModel models for the NeoMed database schema.
"""

from datetime import datetime, timezone
from typing import Optional, List, Dict, Any
from sqlmodel import SQLModel, Field, Column
from sqlalchemy import (
    DateTime, JSON, Text, ForeignKey, String, Index, UniqueConstraint, CheckConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
import uuid


def utcnow() -> datetime:
    """Naive UTC timestamp; every datetime column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


# JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")

# Columns hold naive UTC values from utcnow()
NaiveUTC = DateTime(timezone=False)


class User(SQLModel, table=True):
    """Credential store row. ``doctor_id`` is set only for patient accounts."""
    __tablename__ = "users"

    id: str = Field(default_factory=new_id, primary_key=True)
    email: str = Field(sa_column=Column(String(320), unique=True, index=True, nullable=False))
    name: str
    role: str = Field(default="doctor")
    password_hash: str
    doctor_id: Optional[str] = Field(
        default=None,
        sa_column=Column(String, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True),
    )
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(NaiveUTC, nullable=False))
    last_seen_at: Optional[datetime] = Field(default=None, sa_column=Column(NaiveUTC, nullable=True))


class TenantDocument(SQLModel, table=True):
    """One JSON list per (owner, data type)."""
    __tablename__ = "user_data"
    __table_args__ = (
        CheckConstraint(
            "data_type IN ('patients', 'prescriptions', 'appointments', 'medicalRecords')",
            name="ck_user_data_data_type",
        ),
    )

    user_id: str = Field(
        sa_column=Column(String, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    )
    data_type: str = Field(sa_column=Column(String(32), primary_key=True))
    payload: List[Any] = Field(
        default_factory=list,
        sa_column=Column(JSONType, nullable=False, server_default=text("'[]'")),
    )
    updated_at: datetime = Field(default_factory=utcnow, sa_column=Column(NaiveUTC, nullable=False))


class EmergencyRequest(SQLModel, table=True):
    """Patient help request; at most one open row per patient."""
    __tablename__ = "emergency_requests"
    __table_args__ = (
        Index(
            "uq_emergency_requests_open_patient",
            "patient_id",
            unique=True,
            postgresql_where=text("status = 'open'"),
            sqlite_where=text("status = 'open'"),
        ),
    )

    id: str = Field(default_factory=new_id, primary_key=True)
    patient_id: str = Field(sa_column=Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False))
    doctor_id: Optional[str] = None
    patient_name: str = Field(default="")
    patient_email: str = Field(default="")
    patient_phone: Optional[str] = None
    message: str = Field(default="", sa_column=Column(Text, nullable=False))
    status: str = Field(default="open", index=True)

    attending_doctor_id: Optional[str] = None
    attending_doctor_name: Optional[str] = None
    attending_doctor_email: Optional[str] = None

    video_call_url: Optional[str] = None
    video_call_provider: Optional[str] = None
    video_call_started_at: Optional[datetime] = Field(default=None, sa_column=Column(NaiveUTC, nullable=True))

    resolved_by: Optional[str] = None
    resolved_at: Optional[datetime] = Field(default=None, sa_column=Column(NaiveUTC, nullable=True))
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(NaiveUTC, nullable=False))
    updated_at: datetime = Field(default_factory=utcnow, sa_column=Column(NaiveUTC, nullable=False, index=True))


class MevoDocument(SQLModel, table=True):
    """Outcome of a document issuance attempt; one row per (issuer, prescription, type)."""
    __tablename__ = "mevo_documents"
    __table_args__ = (
        UniqueConstraint("user_id", "prescription_id", "document_type", name="uq_mevo_documents_issue"),
    )

    id: str = Field(default_factory=new_id, primary_key=True)
    user_id: str = Field(sa_column=Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False))
    prescription_id: str
    patient_id: Optional[str] = None
    document_type: str
    status: str
    provider_name: str = Field(default="mevo")
    provider_document_id: Optional[str] = None
    provider_token: Optional[str] = None
    provider_payload: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSONType, nullable=False))
    raw_response: Optional[Any] = Field(default=None, sa_column=Column(JSONType, nullable=True))
    error_message: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    created_at: datetime = Field(default_factory=utcnow, sa_column=Column(NaiveUTC, nullable=False))
    updated_at: datetime = Field(default_factory=utcnow, sa_column=Column(NaiveUTC, nullable=False))
