"""
Admin-only user listing.
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from neomed.core.auth import require_admin
from neomed.db.session import get_context, get_db_session
from neomed.models import User, utcnow
from neomed.schemas import UserCountResponse, UserListResponse
from neomed.services.users import count_users, list_users, sanitize_user

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/users/count", response_model=UserCountResponse)
async def users_count(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session)
):
    return {"count": await count_users(db)}


@router.get("/users", response_model=UserListResponse)
async def users_list(
    request: Request,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db_session)
):
    """All accounts, oldest first, with their online flag."""
    now = utcnow()
    window = get_context(request).settings.liveness_window
    users = await list_users(db)
    return {"users": [sanitize_user(user, now, window) for user in users]}
