"""
Audit recorder. Best-effort: a failed write is logged and swallowed, never
raised into the operation being audited.

Each entry is written in its own session, so it is never part of the
transaction it describes.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_session_factory
from ..models.audit import AuditLog
from ..repositories import audit as audit_repo

logger = logging.getLogger(__name__)


@dataclass
class AuditContext:
    user_id: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    session_id: Optional[str] = None
    additional_data: dict[str, Any] = field(default_factory=dict)


class AuditActions:
    # Documents
    DOCUMENT_UPLOAD = "document.upload"
    DOCUMENT_DOWNLOAD = "document.download"
    DOCUMENT_DELETE = "document.delete"
    DOCUMENT_ANALYZE = "document.analyze"
    DOCUMENT_ANALYZE_FAILED = "document.analyze.failed"

    # AI
    AI_CHAT = "ai.chat"
    CONTRACT_GENERATE = "ai.contract.generate"

    # Compliance
    COMPLIANCE_CHECK = "compliance.check"
    COMPLIANCE_REPORT = "compliance.report.generate"
    COMPLIANCE_REPORT_ARCHIVE = "compliance.report.archive"

    # Users
    USER_CREATE = "user.create"

    # Data access
    DATA_VIEW = "data.view"

    # System
    SYSTEM_ERROR = "system.error"


class AuditResources:
    USER = "user"
    DOCUMENT = "document"
    AI_ANALYSIS = "ai_analysis"
    COMPLIANCE_REPORT = "compliance_report"
    SYSTEM = "system"


async def record(
    action: str,
    resource: str,
    resource_id: Optional[str] = None,
    context: Optional[AuditContext] = None,
    details: Optional[dict[str, Any]] = None,
) -> None:
    """Append one audit row in its own session. Never raises."""
    context = context or AuditContext()
    merged = dict(details or {})
    if context.session_id:
        merged["sessionId"] = context.session_id
    merged.update(context.additional_data)

    try:
        async with get_session_factory()() as db:
            await audit_repo.create_audit_log(
                db,
                user_id=context.user_id,
                action=action,
                resource=resource,
                resource_id=resource_id,
                details=merged,
                ip_address=context.ip_address,
                user_agent=context.user_agent,
            )
            await db.commit()
    except Exception:
        logger.exception("Failed to record audit event %s on %s", action, resource)


# ── Helpers for common scenarios ─────────────────────────────────────

async def log_document_action(
    action: str,
    document_id: int,
    context: AuditContext,
    details: Optional[dict[str, Any]] = None,
) -> None:
    await record(action, AuditResources.DOCUMENT, str(document_id), context, details)


async def log_ai_action(
    action: str,
    context: AuditContext,
    details: Optional[dict[str, Any]] = None,
) -> None:
    await record(action, AuditResources.AI_ANALYSIS, None, context, details)


async def log_compliance_action(
    action: str,
    context: AuditContext,
    details: Optional[dict[str, Any]] = None,
    report_id: Optional[int] = None,
) -> None:
    await record(
        action,
        AuditResources.COMPLIANCE_REPORT,
        str(report_id) if report_id is not None else None,
        context,
        details,
    )


async def log_user_action(
    action: str,
    target_user_id: str,
    context: AuditContext,
    details: Optional[dict[str, Any]] = None,
) -> None:
    await record(action, AuditResources.USER, target_user_id, context, details)


# ── Reading ──────────────────────────────────────────────────────────

def format_audit_log(log: AuditLog) -> str:
    """One-line human readable rendering."""
    ts = log.timestamp.strftime("%Y-%m-%d %H:%M:%S") if log.timestamp else "unknown time"
    user = log.user_id or "System"
    resource_id = f" ({log.resource_id})" if log.resource_id else ""
    return f"[{ts}] {user} performed {log.action} on {log.resource}{resource_id}"


async def get_audit_statistics(db: AsyncSession, user_id: str) -> dict[str, Any]:
    """Totals over the latest 100 entries: all, last 24h, top 5 actions."""
    logs = await audit_repo.list_audit_logs(db, user_id, limit=100)

    cutoff = datetime.now(timezone.utc) - timedelta(hours=24)
    recent = sum(1 for log in logs if log.timestamp and _aware(log.timestamp) > cutoff)

    counts = Counter(log.action for log in logs)
    top = [{"action": action, "count": count} for action, count in counts.most_common(5)]

    return {"totalActions": len(logs), "recentActions": recent, "topActions": top}


def _aware(ts: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)
