"""
Compliance endpoints: blended score, ad-hoc checks, reports.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.auth import AuthenticatedUser
from ..core.dependencies import get_audit_context, get_db, get_user
from ..core.schemas import CamelModel
from ..models.analysis import AnalysisType
from ..models.compliance import REPORT_TYPES
from ..repositories import analyses as analyses_repo
from ..repositories import compliance as compliance_repo
from ..services import analysis, audit
from ..services import compliance as compliance_service
from ..services.audit import AuditActions, AuditContext
from ..services.compliance import ComplianceMetrics

logger = logging.getLogger(__name__)

compliance_router = APIRouter(prefix="/compliance", tags=["compliance"])


class ScoreRequest(CamelModel):
    content: str = ""


class CheckRequest(CamelModel):
    content: str = ""
    compliance_type: str = "gdpr"


class GenerateReportRequest(CamelModel):
    report_type: str = "gdpr"


class ReportOut(CamelModel):
    id: int
    report_type: str
    score: float
    findings: Optional[dict] = None
    recommendations: Optional[list] = None
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@compliance_router.get("/score", response_model=ComplianceMetrics)
async def get_score(
    user: AuthenticatedUser = Depends(get_user),
    db: AsyncSession = Depends(get_db),
):
    return await compliance_service.calculate_compliance_score(db, user.user_id)


@compliance_router.post("/score", response_model=ComplianceMetrics)
async def rescore(
    request: ScoreRequest,
    user: AuthenticatedUser = Depends(get_user),
    db: AsyncSession = Depends(get_db),
    context: AuditContext = Depends(get_audit_context),
):
    """Run a fresh GDPR check on the given text and fold it into the score."""
    if not request.content.strip():
        raise HTTPException(status_code=400, detail="Content is required")

    metrics = await compliance_service.calculate_compliance_score(
        db, user.user_id, document_content=request.content
    )
    await audit.log_compliance_action(
        AuditActions.COMPLIANCE_CHECK,
        context,
        {"complianceType": "gdpr", "score": metrics.gdpr, "overall": metrics.overall},
    )
    return metrics


@compliance_router.post("/check", response_model=analysis.ComplianceCheckResult)
async def run_check(
    request: CheckRequest,
    user: AuthenticatedUser = Depends(get_user),
    db: AsyncSession = Depends(get_db),
    context: AuditContext = Depends(get_audit_context),
):
    if not request.content.strip():
        raise HTTPException(status_code=400, detail="Content is required")

    result = await analysis.compliance_check(request.content, request.compliance_type)

    await analyses_repo.create_ai_analysis(
        db,
        user_id=user.user_id,
        analysis_type=AnalysisType.COMPLIANCE_CHECK,
        prompt=f"{request.compliance_type.upper()} compliance check",
        response=result.model_dump_json(by_alias=True),
        metadata={"complianceType": request.compliance_type, "contentLength": len(request.content)},
        tokens_used=result.tokens_used,
    )
    await db.commit()

    await audit.log_compliance_action(
        AuditActions.COMPLIANCE_CHECK,
        context,
        {"complianceType": request.compliance_type, "score": result.score},
    )
    return result


@compliance_router.get("/reports", response_model=list[ReportOut])
async def list_reports(
    user: AuthenticatedUser = Depends(get_user),
    db: AsyncSession = Depends(get_db),
):
    reports = await compliance_repo.list_compliance_reports(db, user.user_id)
    return [ReportOut.model_validate(r) for r in reports]


@compliance_router.post("/generate-report")
async def generate_report(
    request: GenerateReportRequest,
    user: AuthenticatedUser = Depends(get_user),
    db: AsyncSession = Depends(get_db),
    context: AuditContext = Depends(get_audit_context),
):
    if request.report_type not in REPORT_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid report type. Use one of: {', '.join(REPORT_TYPES)}",
        )

    report = await compliance_service.generate_compliance_report(
        db, user.user_id, request.report_type
    )
    await audit.log_compliance_action(
        AuditActions.COMPLIANCE_REPORT,
        context,
        {"reportType": request.report_type},
        report_id=report.id,
    )
    return {"message": "Compliance report generated successfully", "reportId": report.id}


@compliance_router.post("/reports/{report_id}/archive", response_model=ReportOut)
async def archive_report(
    report_id: int,
    user: AuthenticatedUser = Depends(get_user),
    db: AsyncSession = Depends(get_db),
    context: AuditContext = Depends(get_audit_context),
):
    report = await compliance_service.archive_report(db, user.user_id, report_id)
    if report is None:
        raise HTTPException(status_code=404, detail="Report not found")

    await audit.log_compliance_action(
        AuditActions.COMPLIANCE_REPORT_ARCHIVE,
        context,
        {"reportType": report.report_type},
        report_id=report.id,
    )
    return ReportOut.model_validate(report)
