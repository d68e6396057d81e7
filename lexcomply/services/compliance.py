"""
Compliance scoring and report generation.

"Current" score per category = most recent active report of that type.
Data retention is assumed compliant (100) until a report says otherwise;
every other category defaults to 0.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.schemas import CamelModel
from ..models.compliance import REPORT_TYPES, ComplianceReport
from ..repositories import compliance as compliance_repo
from ..repositories import documents as documents_repo
from . import analysis

logger = logging.getLogger(__name__)

DEFAULT_SCORES = {
    "gdpr": 0.0,
    "iso27001": 0.0,
    "data_retention": 100.0,
    "security": 0.0,
}

REPORT_DOCUMENT_WINDOW = 50

NO_DOCUMENTS_FINDING = "No documents found for compliance analysis"
NO_DOCUMENTS_RECOMMENDATION = "Upload documents to begin compliance analysis"


class ComplianceMetrics(CamelModel):
    gdpr: float
    iso27001: float
    data_retention: float
    security: float
    overall: int


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


async def current_scores(db: AsyncSession, user_id: str) -> dict[str, float]:
    scores = dict(DEFAULT_SCORES)
    for report_type in REPORT_TYPES:
        report = await compliance_repo.get_latest_compliance_report(db, user_id, report_type)
        if report is not None and report.score is not None:
            scores[report_type] = float(report.score)
    return scores


async def calculate_compliance_score(
    db: AsyncSession, user_id: str, document_content: Optional[str] = None
) -> ComplianceMetrics:
    """
    Blend the four current category scores. With document_content, a fresh
    GDPR check is run and persisted first, and its score replaces the stored one.
    """
    scores = await current_scores(db, user_id)

    if document_content:
        check = await analysis.compliance_check(document_content, "gdpr")
        await compliance_repo.create_compliance_report(
            db,
            user_id=user_id,
            report_type="gdpr",
            score=check.score,
            findings={
                "issues": check.issues,
                "recommendations": check.recommendations,
                "timestamp": _now_iso(),
            },
            recommendations=check.recommendations,
        )
        await db.commit()
        scores["gdpr"] = check.score

    overall = _round_half_up(sum(scores.values()) / len(scores))
    return ComplianceMetrics(
        gdpr=scores["gdpr"],
        iso27001=scores["iso27001"],
        data_retention=scores["data_retention"],
        security=scores["security"],
        overall=overall,
    )


async def generate_compliance_report(
    db: AsyncSession, user_id: str, report_type: str = "gdpr"
) -> ComplianceReport:
    """Summarise the user's recent documents into one new active report."""
    if report_type not in REPORT_TYPES:
        raise ValueError(f"Unknown report type: {report_type}")

    docs = await documents_repo.list_documents(db, user_id, limit=REPORT_DOCUMENT_WINDOW)

    if not docs:
        report = await compliance_repo.create_compliance_report(
            db,
            user_id=user_id,
            report_type=report_type,
            score=0,
            findings={"message": NO_DOCUMENTS_FINDING, "timestamp": _now_iso()},
            recommendations=[NO_DOCUMENTS_RECOMMENDATION],
        )
        await db.commit()
        logger.info("Placeholder %s report for user %s (no documents)", report_type, user_id)
        return report

    scored = [float(d.compliance_score) for d in docs if d.compliance_score is not None]
    average = sum(scored) / len(scored) if scored else 0.0

    issues: list[str] = []
    recommendations: list[str] = []
    for doc in docs:
        result = doc.analysis_result or {}
        gdpr = result.get("gdprCompliance") or {}
        issues.extend(gdpr.get("issues") or [])
        recommendations.extend(result.get("recommendations") or [])

    recommendations = _dedupe(recommendations) or get_compliance_recommendations(average)

    report = await compliance_repo.create_compliance_report(
        db,
        user_id=user_id,
        report_type=report_type,
        score=average,
        findings={
            "analyzedDocuments": len(docs),
            "scoredDocuments": len(scored),
            "issues": _dedupe(issues),
            "timestamp": _now_iso(),
        },
        recommendations=recommendations,
    )
    await db.commit()
    logger.info(
        "Generated %s report for user %s: score=%.2f over %d document(s)",
        report_type, user_id, average, len(scored),
    )
    return report


def get_compliance_recommendations(score: float) -> list[str]:
    if score < 50:
        return [
            "Urgent: Review and update your privacy policy",
            "Implement data protection impact assessments",
            "Review data processing activities",
        ]
    if score < 80:
        return [
            "Update cookie consent mechanisms",
            "Review data retention policies",
            "Implement regular compliance audits",
        ]
    return [
        "Maintain current compliance standards",
        "Consider advanced security measures",
        "Regular monitoring and updates",
    ]


async def archive_report(
    db: AsyncSession, user_id: str, report_id: int
) -> Optional[ComplianceReport]:
    report = await compliance_repo.archive_compliance_report(db, user_id, report_id)
    if report is not None:
        await db.commit()
    return report


def _dedupe(items: list) -> list:
    seen = set()
    out = []
    for item in items:
        key = str(item)
        if key not in seen:
            seen.add(key)
            out.append(item)
    return out


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
