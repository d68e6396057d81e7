"""
FastAPI dependencies. Injected into route handlers.
"""

from dataclasses import replace

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from .auth import AuthenticatedUser, get_current_user
from .database import get_db as _get_db
from .storage import StorageBackend, get_storage as _get_storage
from ..repositories import users as users_repo
from ..services import audit
from ..services.audit import AuditContext


async def get_db() -> AsyncSession:
    """Yields an async DB session per request."""
    async for session in _get_db():
        yield session


async def get_user(
    request: Request,
    authorization: str = Header(default=""),
    db: AsyncSession = Depends(get_db),
) -> AuthenticatedUser:
    """
    Resolve the authenticated principal and make sure its User row exists.
    Returns the dev principal if FF_USE_AUTH0=false.
    """
    try:
        principal = await get_current_user(authorization)
    except PermissionError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )

    user, created = await users_repo.upsert_user(db, principal)
    if created:
        await audit.log_user_action(
            audit.AuditActions.USER_CREATE,
            user.id,
            _audit_context(request, principal.user_id),
            {"email": user.email},
        )
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is disabled",
        )

    # The stored role wins over the token claim
    return replace(principal, role=user.role or principal.role)


def get_audit_context(
    request: Request,
    user: AuthenticatedUser = Depends(get_user),
) -> AuditContext:
    """Who/where metadata attached to every audit entry of this request."""
    return _audit_context(request, user.user_id)


def _audit_context(request: Request, user_id: str) -> AuditContext:
    return AuditContext(
        user_id=user_id,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
        session_id=request.headers.get("x-session-id"),
    )


def get_storage_dep() -> StorageBackend:
    """Returns the active storage backend (S3 or local)."""
    return _get_storage()
