"""
Security utilities for password hashing and session tokens.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from passlib.context import CryptContext

from neomed.core.config import Settings


class SecurityManager:
    """Password hashing and JWT session tokens for one application instance."""

    def __init__(self, settings: Settings):
        self.secret_key = settings.secret_key
        self.algorithm = settings.jwt_algorithm
        self.issuer = settings.jwt_issuer
        self.expire_days = settings.jwt_expire_days
        self.pwd_context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__rounds=settings.bcrypt_rounds,
        )
        # Verified against unknown emails so a failed login costs the same either way
        self._dummy_hash = self.pwd_context.hash("neomed-dummy-password")

    def hash_password(self, password: str) -> str:
        """Hash a password using bcrypt."""
        # Bcrypt has a 72-byte limit, truncate if necessary
        password_bytes = password.encode('utf-8')[:72].decode('utf-8', errors='ignore')
        return self.pwd_context.hash(password_bytes)

    def verify_password(self, plain_password: str, hashed_password: Optional[str]) -> bool:
        """Verify a password against its hash."""
        password_bytes = plain_password.encode('utf-8')[:72].decode('utf-8', errors='ignore')
        if not hashed_password:
            self.pwd_context.verify(password_bytes, self._dummy_hash)
            return False
        try:
            return self.pwd_context.verify(password_bytes, hashed_password)
        except ValueError:
            return False

    def create_session_token(self, user, expires_delta: Optional[timedelta] = None) -> str:
        """Create a signed session token for a user."""
        now = datetime.now(timezone.utc)
        expire = now + (expires_delta or timedelta(days=self.expire_days))
        to_encode = {
            "sub": str(user.id),
            "email": user.email,
            "role": user.role,
            "name": user.name,
            "iss": self.issuer,
            "iat": now,
            "exp": expire,
        }
        return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)

    def verify_token(self, token: str) -> Optional[Dict[str, Any]]:
        """Verify signature, issuer and expiry of a session token."""
        try:
            return jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                issuer=self.issuer,
            )
        except JWTError:
            return None
