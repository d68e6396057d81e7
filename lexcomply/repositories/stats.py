"""
Dashboard statistics in one composite read.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from . import analyses as analyses_repo
from . import compliance as compliance_repo
from . import documents as documents_repo
from . import users as users_repo


async def get_user_stats(db: AsyncSession, user_id: str) -> dict:
    documents_count = await documents_repo.count_documents(db, user_id)
    analyses_count = await analyses_repo.count_ai_analyses(db, user_id)
    active_users = await users_repo.count_active_users(db)

    latest = await compliance_repo.get_latest_compliance_report(db, user_id, "gdpr")
    compliance_score = float(latest.score) if latest is not None else 0.0

    return {
        "documentsCount": documents_count,
        "aiAnalysesCount": analyses_count,
        "complianceScore": compliance_score,
        "activeUsersCount": active_users,
    }
