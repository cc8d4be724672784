"""
Access Control

Bearer credentials and role gates for the order lifecycle.

    - CredentialVerifier: issues and verifies HS256 JWTs carrying
      {id, email, role}
    - PasswordService: Argon2 password hashing
    - ensure_role: per-operation allow-lists over the closed role set

FastAPI dependencies (``get_current_user``, ``require_roles``) resolve the
caller on every request; the WebSocket endpoint calls the verifier directly
on connect.

Author: Khalil Bannouri
Version: 1.0.0
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Iterable, Optional

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from restaurant_orders.core.config import get_settings
from restaurant_orders.core.errors import (
    ConfigurationFault,
    Forbidden,
    Unauthenticated,
)
from restaurant_orders.models import UserRole

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthenticatedUser:
    """Identity resolved from a verified bearer credential."""
    user_id: int
    email: str
    role: UserRole

    @property
    def is_staff(self) -> bool:
        return self.role != UserRole.CUSTOMER


# =============================================================================
# TOKENS
# =============================================================================

class CredentialVerifier:
    """
    Signs and verifies bearer tokens.

    Attributes:
        secret: HMAC signing secret
        algorithm: JWT algorithm (default HS256)
        expires_in: Token lifetime
    """

    def __init__(
        self,
        secret: Optional[str],
        algorithm: str = "HS256",
        expires_in: timedelta = timedelta(hours=24),
    ):
        self.secret = secret
        self.algorithm = algorithm
        self.expires_in = expires_in

    def _require_secret(self) -> str:
        if not self.secret:
            logger.error("JWT_SECRET is not configured")
            raise ConfigurationFault("JWT_SECRET is not configured")
        return self.secret

    def issue(self, user_id: int, email: str, role: UserRole) -> str:
        """Mint a signed token for the given identity."""
        secret = self._require_secret()
        now = datetime.now(timezone.utc)
        claims = {
            "id": user_id,
            "email": email,
            "role": role.value,
            "iat": now,
            "exp": now + self.expires_in,
        }
        return jwt.encode(claims, secret, algorithm=self.algorithm)

    def verify(self, token: Optional[str]) -> AuthenticatedUser:
        """
        Verify a bearer token.

        Raises:
            Unauthenticated: Token absent, malformed, tampered or expired
            ConfigurationFault: Signing secret missing
        """
        if not token:
            raise Unauthenticated("Access token required")

        secret = self._require_secret()
        try:
            claims = jwt.decode(
                token,
                secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", "id", "role"]},
            )
        except jwt.ExpiredSignatureError:
            raise Unauthenticated("Token has expired")
        except jwt.InvalidTokenError as e:
            logger.debug(f"Rejected bearer token: {e}")
            raise Unauthenticated("Invalid token")

        try:
            return AuthenticatedUser(
                user_id=int(claims["id"]),
                email=str(claims.get("email", "")),
                role=UserRole(claims["role"]),
            )
        except (TypeError, ValueError):
            raise Unauthenticated("Invalid token")


@lru_cache()
def get_credential_verifier() -> CredentialVerifier:
    """Get the process-wide verifier built from settings."""
    settings = get_settings()
    return CredentialVerifier(
        secret=settings.jwt_secret,
        algorithm=settings.jwt_algorithm,
        expires_in=timedelta(minutes=settings.jwt_expires_minutes),
    )


# =============================================================================
# PASSWORDS
# =============================================================================

class PasswordService:
    """Argon2id password hashing."""

    def __init__(self, hasher: Optional[PasswordHasher] = None):
        self.hasher = hasher or PasswordHasher()

    def hash(self, password: str) -> str:
        return self.hasher.hash(password)

    def verify(self, password_hash: str, password: str) -> bool:
        try:
            return self.hasher.verify(password_hash, password)
        except (VerificationError, InvalidHashError):
            return False


@lru_cache()
def get_password_service() -> PasswordService:
    return PasswordService()


# =============================================================================
# ROLE GATES
# =============================================================================

def ensure_role(user: AuthenticatedUser, allowed: Iterable[UserRole]) -> None:
    """Raise Forbidden unless the caller's role is in the allow-list."""
    if user.role not in set(allowed):
        raise Forbidden("Insufficient permissions")


# =============================================================================
# FASTAPI DEPENDENCIES
# =============================================================================

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    verifier: CredentialVerifier = Depends(get_credential_verifier),
) -> AuthenticatedUser:
    """Resolve the caller from the Authorization header."""
    token = credentials.credentials if credentials else None
    return verifier.verify(token)


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    verifier: CredentialVerifier = Depends(get_credential_verifier),
) -> Optional[AuthenticatedUser]:
    """Resolve the caller if a bearer token was sent at all."""
    if credentials is None:
        return None
    return verifier.verify(credentials.credentials)


def require_roles(*roles: UserRole):
    """Dependency factory gating a route to the given roles."""

    async def dependency(
        user: AuthenticatedUser = Depends(get_current_user),
    ) -> AuthenticatedUser:
        ensure_role(user, roles)
        return user

    return dependency
