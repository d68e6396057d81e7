"""
Chat message rows.
"""

from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.chat import ChatMessage


async def create_chat_message(
    db: AsyncSession,
    *,
    user_id: str,
    session_id: str,
    message: str,
    is_from_user: bool,
    metadata: Optional[dict[str, Any]] = None,
) -> ChatMessage:
    msg = ChatMessage(
        user_id=user_id,
        session_id=session_id,
        message=message,
        is_from_user=is_from_user,
        metadata_=metadata,
    )
    db.add(msg)
    await db.flush()
    return msg


async def list_chat_messages(
    db: AsyncSession, user_id: str, session_id: str, limit: int = 20
) -> list[ChatMessage]:
    """The newest `limit` messages of a session, newest first."""
    result = await db.execute(
        select(ChatMessage)
        .where(ChatMessage.user_id == user_id, ChatMessage.session_id == session_id)
        .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
