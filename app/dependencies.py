"""FastAPI dependencies."""

from collections.abc import AsyncGenerator, Callable
from dataclasses import dataclass, field
from typing import Annotated
from uuid import UUID

import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ForbiddenException
from app.core.redis_client import CacheManager, get_cache_manager
from app.core.security import decode_access_token
from app.database import get_clinic_session_factory

# Security
security = HTTPBearer()

# Permission names carried in the token
READ_APPOINTMENTS = "appointments.read"
CREATE_APPOINTMENTS = "appointments.create"
UPDATE_APPOINTMENTS = "appointments.update"
DELETE_APPOINTMENTS = "appointments.delete"
OVERRIDE_PATIENT_OVERLAP = "appointments.override_patient_overlap"


@dataclass(frozen=True)
class Principal:
    """Authenticated staff member acting within one clinic."""

    user_id: UUID
    clinic_id: str
    permissions: frozenset[str] = field(default_factory=frozenset)

    def has_permission(self, permission: str) -> bool:
        return permission in self.permissions


def _credentials_error(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> Principal:
    """
    Extract and validate the principal from a JWT token.

    Args:
        credentials: Bearer token credentials

    Returns:
        Principal with user ID, clinic and permissions

    Raises:
        HTTPException: If token is invalid, expired or not bound to a clinic
    """
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise _credentials_error()

    user_id_str = payload.get("sub")
    clinic_id = payload.get("clinic_id")
    if not isinstance(user_id_str, str) or not isinstance(clinic_id, str) or not clinic_id:
        raise _credentials_error()

    try:
        user_id = UUID(user_id_str)
    except ValueError:
        raise _credentials_error("Invalid user ID format")

    structlog.contextvars.bind_contextvars(clinic_id=clinic_id, user_id=user_id_str)

    permissions = payload.get("permissions") or []
    return Principal(
        user_id=user_id,
        clinic_id=clinic_id,
        permissions=frozenset(p for p in permissions if isinstance(p, str)),
    )


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]


def require_permission(permission: str) -> Callable[..., Principal]:
    """
    Build a dependency that only lets principals holding ``permission`` through.

    Args:
        permission: Permission name, e.g. ``appointments.create``

    Returns:
        Dependency returning the principal
    """

    async def checker(principal: CurrentPrincipal) -> Principal:
        if not principal.has_permission(permission):
            raise ForbiddenException(f"Missing permission: {permission}")
        return principal

    return checker


def ensure_patient_overlap_override(principal: Principal, skip_requested: bool) -> None:
    """
    Only principals with the override permission may book over a patient's
    existing appointment.

    Raises:
        ForbiddenException: If the bypass is requested without the permission
    """
    if skip_requested and not principal.has_permission(OVERRIDE_PATIENT_OVERLAP):
        raise ForbiddenException(f"Missing permission: {OVERRIDE_PATIENT_OVERLAP}")


async def get_clinic_db(principal: CurrentPrincipal) -> AsyncGenerator[AsyncSession, None]:
    """Dependency for a session on the principal's clinic database."""
    session_factory = get_clinic_session_factory(principal.clinic_id)
    async with session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


# Type aliases for dependency injection
ClinicSession = Annotated[AsyncSession, Depends(get_clinic_db)]
Cache = Annotated[CacheManager | None, Depends(get_cache_manager)]
Reader = Annotated[Principal, Depends(require_permission(READ_APPOINTMENTS))]
Creator = Annotated[Principal, Depends(require_permission(CREATE_APPOINTMENTS))]
Updater = Annotated[Principal, Depends(require_permission(UPDATE_APPOINTMENTS))]
Deleter = Annotated[Principal, Depends(require_permission(DELETE_APPOINTMENTS))]
