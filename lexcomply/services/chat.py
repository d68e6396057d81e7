"""
Chat session handler. Session ids are opaque client-chosen tokens;
reads and writes are scoped to the owning user only.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from ..models.chat import ChatMessage
from ..repositories import chat as chat_repo
from . import analysis, audit
from .audit import AuditActions, AuditContext

logger = logging.getLogger(__name__)


async def send_message(
    db: AsyncSession,
    user_id: str,
    role: str,
    session_id: str,
    text: str,
    context: AuditContext,
) -> analysis.ChatReply:
    """
    Store the user's message, ask the assistant, store its reply.
    The user message is committed before the LLM call and survives its failure.
    """
    await chat_repo.create_chat_message(
        db, user_id=user_id, session_id=session_id, message=text, is_from_user=True
    )
    await db.commit()

    reply = await analysis.chat(text, "", role)

    await chat_repo.create_chat_message(
        db,
        user_id=user_id,
        session_id=session_id,
        message=reply.message,
        is_from_user=False,
        metadata={
            "suggestions": reply.suggestions,
            "relatedDocuments": reply.related_documents,
        },
    )
    await db.commit()

    await audit.log_ai_action(AuditActions.AI_CHAT, context, {"message": text[:100]})
    logger.info("Chat reply for user %s in session %s", user_id, session_id)
    return reply


async def get_session_messages(
    db: AsyncSession, user_id: str, session_id: str, limit: int = 20
) -> list[ChatMessage]:
    """The newest `limit` messages, oldest first."""
    messages = await chat_repo.list_chat_messages(db, user_id, session_id, limit)
    messages.reverse()
    return messages
