"""
Mevo document issuance records and signature sessions.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlencode
import uuid
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from neomed.core.config import Settings
from neomed.core.errors import BadRequestError
from neomed.core.logging import audit_logger, get_logger
from neomed.db.base import dialect_insert
from neomed.models import MevoDocument, MevoDocumentType, User, new_id, utcnow
from neomed.schemas import MevoEmitRequest
from neomed.services.mevo_client import IssueResult, MevoClient, MevoProviderError

logger = get_logger(__name__)

DOCUMENT_TYPES = tuple(t.value for t in MevoDocumentType)

SIGNATURE_PROVIDERS = {
    "bird_id": "Bird ID",
    "viddas": "Viddas",
}


def _check_emit_request(body: MevoEmitRequest) -> Tuple[str, str]:
    document_type = (body.document_type or "").strip()
    if document_type not in DOCUMENT_TYPES:
        raise BadRequestError(
            "mevo/invalid-document-type",
            "documentType must be 'prescription' or 'certificate'.",
        )
    prescription_id = (body.prescription_id or "").strip()
    if not prescription_id:
        raise BadRequestError("mevo/missing-prescription", "prescriptionId is required.")
    return document_type, prescription_id


def build_provider_payload(user: User, body: MevoEmitRequest, document_type: str, prescription_id: str) -> Dict[str, Any]:
    """Body sent to the provider; also stored on the document row."""
    return {
        "documentType": document_type,
        "prescriptionId": prescription_id,
        "patientId": body.patient_id,
        "prescription": body.prescription or {},
        "patient": body.patient or {},
        "issuer": {"id": user.id, "name": user.name, "email": user.email, "role": user.role},
    }


async def _store_document(db: AsyncSession, values: Dict[str, Any], now: datetime) -> MevoDocument:
    """Insert or overwrite the row for (user, prescription, type); id and created_at survive."""
    stmt = dialect_insert(db, MevoDocument).values(id=new_id(), created_at=now, updated_at=now, **values)
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "prescription_id", "document_type"],
        set_={
            key: getattr(stmt.excluded, key)
            for key in list(values) + ["updated_at"]
            if key not in ("user_id", "prescription_id", "document_type")
        },
    )
    await db.execute(stmt)
    await db.commit()

    result = await db.execute(
        select(MevoDocument)
        .where(
            MevoDocument.user_id == values["user_id"],
            MevoDocument.prescription_id == values["prescription_id"],
            MevoDocument.document_type == values["document_type"],
        )
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def emit_document(
    db: AsyncSession,
    client: MevoClient,
    user: User,
    body: MevoEmitRequest,
    now: Optional[datetime] = None,
) -> Tuple[MevoDocument, str, Optional[MevoProviderError]]:
    """Issue a document and record the outcome.

    Returns ``(document, mode, error)``. A provider failure is not raised here:
    it is stored as a ``failed`` document and handed back so the caller can
    answer with the record attached.
    """
    document_type, prescription_id = _check_emit_request(body)
    payload = build_provider_payload(user, body, document_type, prescription_id)
    values = {
        "user_id": user.id,
        "prescription_id": prescription_id,
        "patient_id": body.patient_id,
        "document_type": document_type,
        "provider_name": "mevo",
        "provider_payload": payload,
    }

    error = None
    try:
        result: IssueResult = await client.issue_document(payload)
        mode = result.mode
        values.update(
            status=result.status,
            provider_document_id=result.provider_document_id,
            provider_token=result.provider_token,
            raw_response=result.raw_response,
            error_message=None,
        )
    except MevoProviderError as e:
        error = e
        mode = "provider"
        values.update(
            status="failed",
            provider_document_id=None,
            provider_token=None,
            raw_response=e.provider_response,
            error_message=e.message,
        )

    document = await _store_document(db, values, now or utcnow())

    if error is None:
        audit_logger.log_user_action(
            user_id=user.id,
            action="mevo_document_issued",
            entity="mevo_document",
            entity_id=document.id,
            details={"document_type": document_type, "status": document.status, "mode": mode},
        )
    else:
        logger.warning(
            "Mevo issuance failed",
            document_id=document.id,
            http_status=error.http_status,
            error=error.message,
        )
    return document, mode, error


async def list_documents(
    db: AsyncSession,
    user_id: str,
    prescription_id: Optional[str] = None,
    document_type: Optional[str] = None,
) -> List[MevoDocument]:
    query = select(MevoDocument).where(MevoDocument.user_id == user_id)
    if prescription_id:
        query = query.where(MevoDocument.prescription_id == prescription_id)
    if document_type:
        query = query.where(MevoDocument.document_type == document_type)
    result = await db.execute(query.order_by(MevoDocument.updated_at.desc()))
    return list(result.scalars().all())


def create_signature_session(
    provider: Optional[str],
    user: User,
    settings: Settings,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Descriptor the front end uses to open the provider's signing flow."""
    provider = (provider or "").strip().lower()
    if provider not in SIGNATURE_PROVIDERS:
        raise BadRequestError(
            "mevo/invalid-signature-provider",
            "provider must be 'bird_id' or 'viddas'.",
        )

    now = now or utcnow()
    session_id = f"sig_{uuid.uuid4().hex}"
    callback_url = f"{settings.api_url.rstrip('/')}/integrations/mevo/signature/callback"
    query = urlencode({
        "provider": provider,
        "session": session_id,
        "callback": callback_url,
        "login_hint": user.email,
    })
    auth_url = f"{settings.mevo_signature_url.rstrip('/')}/assinatura?{query}"
    embed_base = settings.mevo_embed_url or settings.mevo_signature_url
    embed_url = f"{embed_base.rstrip('/')}/embed?{urlencode({'session': session_id})}"

    audit_logger.log_user_action(
        user_id=user.id,
        action="mevo_signature_session",
        entity="signature_session",
        entity_id=session_id,
        details={"provider": provider},
    )
    return {
        "provider": provider,
        "provider_label": SIGNATURE_PROVIDERS[provider],
        "session_id": session_id,
        "auth_url": auth_url,
        "embed_url": embed_url,
        "callback_url": callback_url,
        "expires_at": now + timedelta(minutes=settings.mevo_signature_ttl_minutes),
        "mode": "provider" if settings.mevo_configured else "mock",
    }
