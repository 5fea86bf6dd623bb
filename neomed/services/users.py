"""
Credential store queries and the public user shape.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from neomed.core.config import Settings
from neomed.models import DIRECTORY_ROLES, STAFF_ROLES, User, UserRole, utcnow
from neomed.services.validators import normalize_email

LIVENESS_WINDOW = timedelta(seconds=120)


async def get_user(db: AsyncSession, user_id: Optional[str]) -> Optional[User]:
    if not user_id:
        return None
    result = await db.execute(select(User).where(User.id == str(user_id)))
    return result.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.email == normalize_email(email)))
    return result.scalar_one_or_none()


async def get_staff_user(db: AsyncSession, user_id: Optional[str]) -> Optional[User]:
    user = await get_user(db, user_id)
    if user is None or user.role not in STAFF_ROLES:
        return None
    return user


async def count_users(db: AsyncSession) -> int:
    result = await db.execute(select(func.count()).select_from(User))
    return int(result.scalar_one())


async def list_users(db: AsyncSession) -> List[User]:
    result = await db.execute(select(User).order_by(User.created_at))
    return list(result.scalars().all())


async def list_doctors(db: AsyncSession) -> List[User]:
    result = await db.execute(
        select(User).where(User.role.in_(DIRECTORY_ROLES)).order_by(User.name)
    )
    return list(result.scalars().all())


async def create_user(
    db: AsyncSession,
    email: str,
    name: str,
    role: str,
    password_hash: str,
    doctor_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> User:
    """Add a new user to the session and flush it. Caller commits."""
    now = now or utcnow()
    user = User(
        email=normalize_email(email),
        name=name,
        role=role,
        password_hash=password_hash,
        doctor_id=doctor_id,
        created_at=now,
        last_seen_at=now,
    )
    db.add(user)
    await db.flush()
    return user


def heal_reserved_admin(user: User, settings: Settings) -> bool:
    """The reserved admin email is always an admin with no doctor link."""
    if normalize_email(user.email) != settings.admin_email:
        return False
    changed = user.role != UserRole.ADMIN.value or user.doctor_id is not None
    user.role = UserRole.ADMIN.value
    user.doctor_id = None
    return changed


def touch_last_seen(user: User, now: Optional[datetime] = None) -> None:
    user.last_seen_at = now or utcnow()


def is_online(last_seen_at: Optional[datetime], now: Optional[datetime] = None,
              window: timedelta = LIVENESS_WINDOW) -> bool:
    if last_seen_at is None:
        return False
    return (now or utcnow()) - last_seen_at <= window


def sanitize_user(user: User, now: Optional[datetime] = None,
                  window: timedelta = LIVENESS_WINDOW) -> Dict[str, Any]:
    """Public representation of a user; never includes the password hash."""
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "doctor_id": user.doctor_id,
        "created_at": user.created_at,
        "last_seen_at": user.last_seen_at,
        "online": is_online(user.last_seen_at, now, window),
    }
