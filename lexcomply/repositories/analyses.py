"""
AI analysis rows. Writing one counts against the user's plan usage.
"""

from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.analysis import AiAnalysis
from . import users as users_repo


async def create_ai_analysis(
    db: AsyncSession,
    *,
    user_id: str,
    analysis_type: str,
    prompt: str,
    response: str,
    document_id: Optional[int] = None,
    metadata: Optional[dict[str, Any]] = None,
    tokens_used: Optional[int] = None,
) -> AiAnalysis:
    analysis = AiAnalysis(
        document_id=document_id,
        user_id=user_id,
        analysis_type=analysis_type,
        prompt=prompt,
        response=response,
        metadata_=metadata or {},
        tokens_used=tokens_used,
    )
    db.add(analysis)
    await users_repo.increment_usage(db, user_id)
    await db.flush()
    return analysis


async def list_ai_analyses(
    db: AsyncSession,
    user_id: str,
    limit: int = 10,
    document_id: Optional[int] = None,
) -> list[AiAnalysis]:
    stmt = select(AiAnalysis).where(AiAnalysis.user_id == user_id)
    if document_id is not None:
        stmt = stmt.where(AiAnalysis.document_id == document_id)
    result = await db.execute(
        stmt.order_by(AiAnalysis.created_at.desc(), AiAnalysis.id.desc()).limit(limit)
    )
    return list(result.scalars().all())


async def count_ai_analyses(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(
        select(func.count()).select_from(AiAnalysis).where(AiAnalysis.user_id == user_id)
    )
    return int(result.scalar() or 0)
