"""
Mevo integration endpoints (staff only).
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from neomed.core.auth import require_staff
from neomed.core.errors import UpstreamError
from neomed.db.session import get_context, get_db_session
from neomed.models import User
from neomed.schemas import (
    MevoDocumentListResponse, MevoDocumentOut, MevoEmitRequest, MevoEmitResponse,
    SignatureSessionRequest, SignatureSessionResponse,
)
from neomed.services import mevo_documents
from neomed.services.mevo_client import MevoProviderError

router = APIRouter(prefix="/integrations/mevo", tags=["Mevo"])


@router.post("/signature/session", response_model=SignatureSessionResponse)
async def signature_session(
    payload: SignatureSessionRequest,
    request: Request,
    user: User = Depends(require_staff)
):
    """Start a Bird ID or Viddas signing session."""
    settings = get_context(request).settings
    session = mevo_documents.create_signature_session(payload.provider, user, settings)
    return {"session": session}


@router.post("/emit", response_model=MevoEmitResponse)
async def emit(
    payload: MevoEmitRequest,
    request: Request,
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db_session)
):
    """
    Issue a prescription or certificate through Mevo.

    Without provider configuration the document comes back in ``mock`` mode.
    A provider failure is stored as a ``failed`` document and answered with 502.
    """
    client = get_context(request).mevo_client
    document, mode, error = await mevo_documents.emit_document(db, client, user, payload)
    out = MevoDocumentOut.model_validate(document)

    if error is not None:
        raise UpstreamError(
            MevoProviderError.code,
            error.message,
            extra={
                "providerStatus": error.http_status,
                "document": out.model_dump(mode="json", by_alias=True),
            },
        )
    return {"mode": mode, "document": out}


@router.get("/documents", response_model=MevoDocumentListResponse)
async def documents(
    prescription_id: Optional[str] = Query(None, alias="prescriptionId"),
    document_type: Optional[str] = Query(None, alias="documentType"),
    user: User = Depends(require_staff),
    db: AsyncSession = Depends(get_db_session)
):
    """Documents issued by the current user, newest first."""
    rows = await mevo_documents.list_documents(db, user.id, prescription_id, document_type)
    return {"documents": [MevoDocumentOut.model_validate(row) for row in rows]}
