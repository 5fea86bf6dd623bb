"""
Per-owner JSON documents (patients, prescriptions, appointments, medical records).
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from neomed.core.errors import BadRequestError
from neomed.db.base import dialect_insert
from neomed.models import DATA_TYPES, TenantDocument, utcnow


class UnknownDataTypeError(BadRequestError):
    default_code = "data/unknown-type"
    default_message = "Unknown data type."


class InvalidPayloadError(BadRequestError):
    default_code = "data/invalid-payload"
    default_message = "Payload must be a list of records."


def check_data_type(data_type: str) -> str:
    if data_type not in DATA_TYPES:
        raise UnknownDataTypeError(message=f"Unknown data type: {data_type}")
    return data_type


def empty_collections() -> Dict[str, List[Any]]:
    return {data_type: [] for data_type in DATA_TYPES}


async def save_document(
    db: AsyncSession,
    owner_id: str,
    data_type: str,
    payload: Any,
    now: Optional[datetime] = None,
) -> None:
    """Replace the whole list stored for (owner, data type). Caller commits."""
    check_data_type(data_type)
    if not isinstance(payload, list):
        raise InvalidPayloadError(message=f"{data_type} payload must be a list.")

    now = now or utcnow()
    stmt = dialect_insert(db, TenantDocument).values(
        user_id=owner_id,
        data_type=data_type,
        payload=payload,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "data_type"],
        set_={"payload": stmt.excluded.payload, "updated_at": stmt.excluded.updated_at},
    )
    await db.execute(stmt)


async def load_document(db: AsyncSession, owner_id: str, data_type: str) -> List[Any]:
    check_data_type(data_type)
    result = await db.execute(
        select(TenantDocument.payload).where(
            TenantDocument.user_id == owner_id,
            TenantDocument.data_type == data_type,
        )
    )
    payload = result.scalar_one_or_none()
    return list(payload) if isinstance(payload, list) else []


async def load_all(db: AsyncSession, owner_id: str) -> Dict[str, List[Any]]:
    result = await db.execute(
        select(TenantDocument.data_type, TenantDocument.payload).where(
            TenantDocument.user_id == owner_id
        )
    )
    data = empty_collections()
    for data_type, payload in result.all():
        if data_type in data and isinstance(payload, list):
            data[data_type] = payload
    return data


async def append_record(
    db: AsyncSession,
    owner_id: str,
    data_type: str,
    record: Dict[str, Any],
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Append one record server-side (patient-initiated requests). Caller commits."""
    records = await load_document(db, owner_id, data_type)
    records.append(record)
    await save_document(db, owner_id, data_type, records, now=now)
    return record
