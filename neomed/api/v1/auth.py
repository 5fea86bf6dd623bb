"""
Authentication API endpoints.
"""

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from neomed.core.auth import get_current_user
from neomed.core.logging import audit_logger
from neomed.db.session import get_context, get_db_session
from neomed.models import User
from neomed.schemas import (
    AuthResponse, LoginRequest, MessageResponse, RegisterRequest,
)
from neomed.services import accounts
from neomed.services.users import sanitize_user

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(
    payload: RegisterRequest,
    request: Request,
    db: AsyncSession = Depends(get_db_session)
):
    """
    Create an account.

    The first account becomes an admin; patients must pick an existing staff
    account and send a complete profile. Registration also signs the user in.
    """
    context = get_context(request)
    user, token = await accounts.register(db, context.security, context.settings, payload)
    return {"user": sanitize_user(user, window=context.settings.liveness_window), "token": token}


@router.post("/login", response_model=AuthResponse)
async def login(
    payload: LoginRequest,
    request: Request,
    db: AsyncSession = Depends(get_db_session)
):
    """Exchange email and password for a session token."""
    context = get_context(request)
    user, token = await accounts.login(
        db,
        context.security,
        context.settings,
        payload,
        ip_address=request.client.host if request.client else None,
    )
    return {"user": sanitize_user(user, window=context.settings.liveness_window), "token": token}


@router.get("/me", response_model=AuthResponse)
async def me(request: Request, user: User = Depends(get_current_user)):
    """Current user plus a re-issued token."""
    context = get_context(request)
    token = context.security.create_session_token(user)
    return {"user": sanitize_user(user, window=context.settings.liveness_window), "token": token}


@router.post("/ping", response_model=AuthResponse)
async def ping(request: Request, user: User = Depends(get_current_user)):
    """Liveness heartbeat; the auth dependency already refreshed ``last_seen_at``."""
    context = get_context(request)
    token = context.security.create_session_token(user)
    return {"user": sanitize_user(user, window=context.settings.liveness_window), "token": token}


@router.post("/logout", response_model=MessageResponse)
async def logout(user: User = Depends(get_current_user)):
    # Tokens are not revocable; the client discards its copy
    audit_logger.log_user_action(user_id=user.id, action="logout", entity="user", entity_id=user.id)
    return {"message": "Logged out."}
