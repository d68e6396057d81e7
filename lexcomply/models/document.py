"""
Documents. Status only moves forward:

    uploaded -> processing -> analyzed | failed

analyzed and failed are terminal. Deletion removes the row and the file.
"""

from decimal import Decimal

from sqlalchemy import String, Integer, Numeric, JSON
from sqlalchemy.orm import Mapped, mapped_column

from .base import OwnedBase


class DocumentStatus:
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    ANALYZED = "analyzed"
    FAILED = "failed"

    TERMINAL = frozenset({ANALYZED, FAILED})


# Allowed predecessors for each target status
ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    DocumentStatus.PROCESSING: frozenset({DocumentStatus.UPLOADED}),
    DocumentStatus.ANALYZED: frozenset({DocumentStatus.PROCESSING}),
    DocumentStatus.FAILED: frozenset({DocumentStatus.UPLOADED, DocumentStatus.PROCESSING}),
}


class Document(OwnedBase):
    __tablename__ = "documents"

    file_name: Mapped[str] = mapped_column(String, nullable=False, index=True)
    original_name: Mapped[str] = mapped_column(String, nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    mime_type: Mapped[str] = mapped_column(String, nullable=False)
    file_url: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(
        String, nullable=False, default=DocumentStatus.UPLOADED
    )
    analysis_result: Mapped[dict] = mapped_column(JSON, nullable=True)
    compliance_score: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=True)
    tags: Mapped[list] = mapped_column(JSON, nullable=True)
