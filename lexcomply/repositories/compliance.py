"""
Compliance report rows.
"""

from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.base import utcnow
from ..models.compliance import ComplianceReport


async def create_compliance_report(
    db: AsyncSession,
    *,
    user_id: str,
    report_type: str,
    score: float,
    findings: dict[str, Any],
    recommendations: Optional[list[str]] = None,
) -> ComplianceReport:
    report = ComplianceReport(
        user_id=user_id,
        report_type=report_type,
        score=Decimal(str(round(float(score), 2))),
        findings=findings,
        recommendations=recommendations or [],
        status="active",
    )
    db.add(report)
    await db.flush()
    return report


async def list_compliance_reports(db: AsyncSession, user_id: str) -> list[ComplianceReport]:
    """Active reports, newest first."""
    result = await db.execute(
        select(ComplianceReport)
        .where(ComplianceReport.user_id == user_id, ComplianceReport.status == "active")
        .order_by(ComplianceReport.created_at.desc(), ComplianceReport.id.desc())
    )
    return list(result.scalars().all())


async def get_latest_compliance_report(
    db: AsyncSession, user_id: str, report_type: str
) -> Optional[ComplianceReport]:
    result = await db.execute(
        select(ComplianceReport)
        .where(
            ComplianceReport.user_id == user_id,
            ComplianceReport.report_type == report_type,
            ComplianceReport.status == "active",
        )
        .order_by(ComplianceReport.created_at.desc(), ComplianceReport.id.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def archive_compliance_report(
    db: AsyncSession, user_id: str, report_id: int
) -> Optional[ComplianceReport]:
    result = await db.execute(
        select(ComplianceReport).where(
            ComplianceReport.id == report_id, ComplianceReport.user_id == user_id
        )
    )
    report = result.scalar_one_or_none()
    if report is None:
        return None
    report.status = "archived"
    report.updated_at = utcnow()
    await db.flush()
    return report
