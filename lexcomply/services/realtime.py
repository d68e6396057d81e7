"""
Realtime notifications. Thin wrapper around core.redis.
"""

from typing import Optional

from ..core import redis as _redis


async def document_status(
    user_id: str, document_id: int, status: str, compliance_score: Optional[float] = None
):
    data = {"documentId": document_id, "status": status}
    if compliance_score is not None:
        data["complianceScore"] = compliance_score
    await _redis.notify_user(user_id, "document.status", data)
