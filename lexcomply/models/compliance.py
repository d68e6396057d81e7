"""
Compliance reports. "Current" score per type = newest active row of that type.
"""

from decimal import Decimal

from sqlalchemy import String, Numeric, JSON
from sqlalchemy.orm import Mapped, mapped_column

from .base import OwnedBase

REPORT_TYPES = ("gdpr", "iso27001", "data_retention", "security")


class ComplianceReport(OwnedBase):
    __tablename__ = "compliance_reports"

    report_type: Mapped[str] = mapped_column(String, nullable=False, index=True)
    score: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    findings: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    recommendations: Mapped[list] = mapped_column(JSON, nullable=True, default=list)
    status: Mapped[str] = mapped_column(
        String, nullable=False, default="active"
    )  # active, archived
