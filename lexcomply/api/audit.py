"""
Audit trail, read-only. Users only ever see their own entries.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.auth import AuthenticatedUser
from ..core.dependencies import get_db, get_user
from ..core.schemas import CamelModel
from ..repositories import audit as audit_repo
from ..services import audit as audit_service

audit_router = APIRouter(tags=["audit"])


class AuditLogOut(CamelModel):
    id: int
    user_id: Optional[str] = None
    action: str
    resource: str
    resource_id: Optional[str] = None
    details: Optional[dict] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    timestamp: Optional[datetime] = None
    summary: str = ""


@audit_router.get("/audit-logs", response_model=list[AuditLogOut])
async def list_audit_logs(
    limit: int = Query(default=20, ge=1, le=1000),
    user: AuthenticatedUser = Depends(get_user),
    db: AsyncSession = Depends(get_db),
):
    logs = await audit_repo.list_audit_logs(db, user.user_id, limit=limit)
    return [
        AuditLogOut.model_validate(log).model_copy(
            update={"summary": audit_service.format_audit_log(log)}
        )
        for log in logs
    ]


@audit_router.get("/audit-logs/stats")
async def audit_stats(
    user: AuthenticatedUser = Depends(get_user),
    db: AsyncSession = Depends(get_db),
):
    return await audit_service.get_audit_statistics(db, user.user_id)
