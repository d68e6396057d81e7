"""
All database models. Imported here so Base.metadata sees them for create_all().
"""

from .base import OwnedBase
from .user import User
from .document import Document, DocumentStatus
from .analysis import AiAnalysis, AnalysisType
from .compliance import ComplianceReport, REPORT_TYPES
from .audit import AuditLog
from .chat import ChatMessage

__all__ = [
    "OwnedBase",
    "User",
    "Document", "DocumentStatus",
    "AiAnalysis", "AnalysisType",
    "ComplianceReport", "REPORT_TYPES",
    "AuditLog",
    "ChatMessage",
]
