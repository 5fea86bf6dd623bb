"""
Matching patient accounts to profile records inside a doctor's ``patients`` list.

Profile records are plain dicts with camelCase keys (``id``, ``linkedUserId``,
``email``, ``cpf`` ...). Nothing here touches the database.
A record already linked to one account never matches another account.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from neomed.services.validators import normalize_email, only_digits

Record = Dict[str, Any]


@dataclass(frozen=True)
class PatientIdentity:
    user_id: str
    email: str = ""
    cpf: str = ""

    @classmethod
    def from_user(cls, user, cpf: str = "") -> "PatientIdentity":
        return cls(user_id=str(user.id), email=user.email or "", cpf=cpf or "")


def _by_linked_user(record: Record, identity: PatientIdentity) -> bool:
    return bool(identity.user_id) and str(record.get("linkedUserId") or "") == identity.user_id


def _by_id(record: Record, identity: PatientIdentity) -> bool:
    return bool(identity.user_id) and str(record.get("id") or "") == identity.user_id


def _by_email(record: Record, identity: PatientIdentity) -> bool:
    email = normalize_email(identity.email)
    return bool(email) and normalize_email(record.get("email")) == email


def _by_cpf(record: Record, identity: PatientIdentity) -> bool:
    cpf = only_digits(identity.cpf)
    return bool(cpf) and only_digits(record.get("cpf")) == cpf


def _linked_elsewhere(record: Record, identity: PatientIdentity) -> bool:
    linked = str(record.get("linkedUserId") or "")
    return bool(linked) and linked != identity.user_id


# Evaluated in order; the first matcher that hits anything wins
PROFILE_MATCHERS: Sequence[Callable[[Record, PatientIdentity], bool]] = (
    _by_linked_user,
    _by_id,
    _by_email,
    _by_cpf,
)


def find_profile(records: List[Record], identity: PatientIdentity) -> Tuple[Optional[int], Optional[Record]]:
    for matcher in PROFILE_MATCHERS:
        for index, record in enumerate(records):
            if not isinstance(record, dict) or _linked_elsewhere(record, identity):
                continue
            if matcher(record, identity):
                return index, record
    return None, None


def matches_identity(record: Any, identity: PatientIdentity) -> bool:
    if not isinstance(record, dict) or _linked_elsewhere(record, identity):
        return False
    return any(matcher(record, identity) for matcher in PROFILE_MATCHERS)


def linked_profile_for_cpf(records: List[Record], cpf: str) -> Optional[Record]:
    """Record with this CPF that already belongs to an account, if any."""
    digits = only_digits(cpf)
    if not digits:
        return None
    for record in records:
        if isinstance(record, dict) and record.get("linkedUserId") and only_digits(record.get("cpf")) == digits:
            return record
    return None


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == []


def merge_profile(existing: Optional[Record], incoming: Record, now: datetime) -> Record:
    """Overlay non-empty ``incoming`` fields on ``existing``; ``id`` and ``createdAt`` are kept."""
    merged: Record = dict(existing or {})
    for key, value in incoming.items():
        if key in ("id", "createdAt") and merged.get(key):
            continue
        if _is_empty(value) and not _is_empty(merged.get(key)):
            continue
        merged[key] = value
    merged.setdefault("createdAt", now.isoformat())
    merged["updatedAt"] = now.isoformat()
    return merged


def upsert_profile(
    records: List[Record],
    identity: PatientIdentity,
    fields: Record,
    now: datetime,
) -> Tuple[List[Record], Record]:
    """Insert or merge the profile for ``identity``; returns a new list and the stored record."""
    index, existing = find_profile(records, identity)
    incoming = dict(fields)
    incoming["linkedUserId"] = identity.user_id
    if existing is None:
        incoming.setdefault("id", identity.user_id)

    record = merge_profile(existing, incoming, now)
    updated = list(records)
    if index is None:
        updated.append(record)
    else:
        updated[index] = record
    return updated, record
