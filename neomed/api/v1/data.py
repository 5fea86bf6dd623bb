"""
Tenant document endpoints (``/saveAll``, ``/all``, ``/{type}/save``, ``/{type}``).

Staff read and write their own documents (admins any user's, through
``userId``); patients only get the projection of their doctor's documents.
"""

from typing import Any
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from neomed.core.auth import get_current_user
from neomed.core.errors import NotFoundError
from neomed.core.logging import audit_logger
from neomed.db.session import get_db_session
from neomed.models import DATA_TYPES, User, UserRole, utcnow
from neomed.schemas import AllDataResponse, DataResponse, MessageResponse
from neomed.services import tenant_data
from neomed.services.scoping import (
    build_patient_projection, ensure_staff_write, requested_owner_id, resolve_owner_id,
)

router = APIRouter(tags=["Data"])


async def read_json_body(request: Request) -> Any:
    """Request body as JSON; an empty or malformed body reads as ``{}``."""
    try:
        return await request.json()
    except ValueError:
        return {}


def _route_not_found(request: Request) -> NotFoundError:
    return NotFoundError("route/not-found", f"Route not found: {request.method} {request.url.path}")


def _owner_for(request: Request, user: User, body: Any = None) -> str:
    requested = requested_owner_id(body, request.query_params, request.headers)
    return resolve_owner_id(user, requested)


@router.post("/saveAll", response_model=MessageResponse)
async def save_all(
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session)
):
    """Replace every document type present in the body."""
    ensure_staff_write(user)
    body = await read_json_body(request)
    owner_id = _owner_for(request, user, body)

    saved = []
    if isinstance(body, dict):
        now = utcnow()
        for data_type in DATA_TYPES:
            if data_type in body:
                await tenant_data.save_document(db, owner_id, data_type, body[data_type], now=now)
                saved.append(data_type)
    await db.commit()

    audit_logger.log_user_action(
        user_id=user.id, action="data_saved", entity="user_data",
        owner_id=owner_id, details={"types": saved},
    )
    return {"message": "All data saved successfully."}


@router.get("/all", response_model=AllDataResponse)
async def get_all(
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session)
):
    owner_id = _owner_for(request, user)
    if user.role == UserRole.PATIENT.value:
        return await build_patient_projection(db, user)
    return await tenant_data.load_all(db, owner_id)


@router.post("/{data_type}/save", response_model=MessageResponse)
async def save_one(
    data_type: str,
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session)
):
    """Replace one document; the list is the body's ``data`` field or the body itself."""
    if data_type not in DATA_TYPES:
        raise _route_not_found(request)
    ensure_staff_write(user)
    body = await read_json_body(request)
    owner_id = _owner_for(request, user, body)

    payload = body.get("data", body) if isinstance(body, dict) else body
    await tenant_data.save_document(db, owner_id, data_type, payload)
    await db.commit()

    audit_logger.log_user_action(
        user_id=user.id, action="data_saved", entity="user_data",
        owner_id=owner_id, details={"types": [data_type]},
    )
    return {"message": f"{data_type} saved successfully."}


@router.get("/{data_type}", response_model=DataResponse)
async def get_one(
    data_type: str,
    request: Request,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session)
):
    if data_type not in DATA_TYPES:
        raise _route_not_found(request)
    owner_id = _owner_for(request, user)
    if user.role == UserRole.PATIENT.value:
        projection = await build_patient_projection(db, user)
        return {"data": projection[data_type]}
    return {"data": await tenant_data.load_document(db, owner_id, data_type)}
