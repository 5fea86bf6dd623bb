"""
Authentication dependencies for FastAPI.
"""

from typing import Optional, Iterable
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from neomed.core.errors import ForbiddenError, UnauthorizedError
from neomed.core.logging import audit_logger
from neomed.db.session import get_context, get_db_session
from neomed.models import STAFF_ROLES, User, UserRole
from neomed.services.users import get_user, heal_reserved_admin, touch_last_seen


# Security scheme; missing credentials are reported with our own error code
security_scheme = HTTPBearer(auto_error=False)


class AuthDependencies:
    """Authentication dependencies for FastAPI endpoints."""

    @staticmethod
    async def get_current_user(
        request: Request,
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
        db: AsyncSession = Depends(get_db_session)
    ) -> User:
        """Get current authenticated user and mark them as seen."""
        if credentials is None or not credentials.credentials:
            raise UnauthorizedError("auth/missing-token", "Missing bearer token.")

        context = get_context(request)
        payload = context.security.verify_token(credentials.credentials)
        if not payload or not payload.get("sub"):
            raise UnauthorizedError("auth/invalid-token", "Invalid or expired token.")

        user = await get_user(db, payload["sub"])
        if user is None:
            raise UnauthorizedError("auth/user-not-found", "User no longer exists.")

        if heal_reserved_admin(user, context.settings):
            audit_logger.log_security_event(
                "admin_role_restored",
                user_id=user.id,
                ip_address=request.client.host if request.client else None,
            )
        touch_last_seen(user)
        db.add(user)
        await db.commit()
        return user

    @staticmethod
    def require_roles(roles: Iterable[str], code: str, message: str):
        """Dependency factory for role-based access control."""
        allowed = frozenset(roles)

        async def role_checker(
            request: Request,
            user: User = Depends(AuthDependencies.get_current_user),
        ) -> User:
            if user.role not in allowed:
                audit_logger.log_security_event(
                    "forbidden_role",
                    user_id=user.id,
                    ip_address=request.client.host if request.client else None,
                    details={"role": user.role, "path": request.url.path},
                )
                raise ForbiddenError(code, message)
            return user

        return role_checker


# Convenience dependencies
get_current_user = AuthDependencies.get_current_user

# Role-based dependencies
require_admin = AuthDependencies.require_roles(
    [UserRole.ADMIN.value], "auth/admin-only", "Admin access required."
)
require_staff = AuthDependencies.require_roles(
    STAFF_ROLES, "auth/staff-only", "Only clinic staff can do this."
)
require_patient = AuthDependencies.require_roles(
    [UserRole.PATIENT.value], "auth/patient-only", "Only patients can do this."
)
