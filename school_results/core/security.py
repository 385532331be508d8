# school_results/core/security.py
"""Bearer-token verification that yields the caller's tenant context."""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from uuid import UUID

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import Settings
from .exceptions import AuthenticationError, ForbiddenError
from ..models.tenant_specific.user import UserRole

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class TenantContext:
    school_id: UUID
    user_id: UUID
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_teacher(self) -> bool:
        return self.role == UserRole.TEACHER

    @property
    def is_student(self) -> bool:
        return self.role == UserRole.STUDENT


def create_access_token(
    settings: Settings,
    user_id: UUID,
    school_id: UUID,
    role: str,
    expires_minutes: Optional[int] = None,
) -> str:
    expire = datetime.now(timezone.utc) + timedelta(
        minutes=expires_minutes or settings.access_token_expire_minutes
    )
    payload = {
        "sub": str(user_id),
        "school_id": str(school_id),
        "role": role.value if isinstance(role, UserRole) else str(role),
        "exp": expire,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_tenant_claims(settings: Settings, token: str) -> TenantContext:
    try:
        payload: Dict[str, Any] = jwt.decode(
            token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm]
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid token")

    user_id = payload.get("sub") or payload.get("id")
    if not user_id:
        raise AuthenticationError("Invalid token")

    # Older tokens carry tenant_id instead of school_id
    school_id = payload.get("school_id") or payload.get("tenant_id")
    if not school_id:
        raise ForbiddenError("User not assigned to a school")

    try:
        role = UserRole(payload.get("role"))
    except ValueError:
        raise AuthenticationError("Invalid role in token")

    try:
        return TenantContext(school_id=UUID(str(school_id)), user_id=UUID(str(user_id)), role=role)
    except ValueError:
        raise AuthenticationError("Invalid token")


async def get_tenant_context(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> TenantContext:
    if not credentials:
        raise AuthenticationError("Authentication required")

    settings: Settings = request.app.state.settings
    context = decode_tenant_claims(settings, credentials.credentials)
    logger.debug(f"User {context.user_id} accessing school {context.school_id}")
    return context
