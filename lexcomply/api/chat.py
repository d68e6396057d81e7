"""
Chat API.

POST /api/chat               send a message, get the reply
GET  /api/chat/{session_id}  session history, oldest first
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.auth import AuthenticatedUser
from ..core.dependencies import get_audit_context, get_db, get_user
from ..core.schemas import CamelModel
from ..models.chat import ChatMessage
from ..services import chat as chat_service
from ..services.audit import AuditContext

logger = logging.getLogger(__name__)

chat_router = APIRouter(tags=["chat"])


class ChatRequest(CamelModel):
    message: str = ""
    session_id: str = ""


class ChatResponse(CamelModel):
    response: str
    suggestions: list[str] = []
    related_documents: list[str] = []


class ChatMessageOut(CamelModel):
    id: int
    session_id: str
    message: str
    is_from_user: bool
    metadata: Optional[dict] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, msg: ChatMessage) -> "ChatMessageOut":
        return cls(
            id=msg.id,
            session_id=msg.session_id,
            message=msg.message,
            is_from_user=msg.is_from_user,
            metadata=msg.metadata_,
            created_at=msg.created_at,
        )


@chat_router.post("/chat", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    user: AuthenticatedUser = Depends(get_user),
    db: AsyncSession = Depends(get_db),
    context: AuditContext = Depends(get_audit_context),
):
    if not request.message.strip() or not request.session_id.strip():
        raise HTTPException(status_code=400, detail="Message and sessionId are required")

    reply = await chat_service.send_message(
        db, user.user_id, user.role, request.session_id, request.message, context
    )
    return ChatResponse(
        response=reply.message,
        suggestions=reply.suggestions,
        related_documents=reply.related_documents,
    )


@chat_router.get("/chat/{session_id}", response_model=list[ChatMessageOut])
async def get_chat_history(
    session_id: str,
    limit: int = Query(default=20, ge=1, le=500),
    user: AuthenticatedUser = Depends(get_user),
    db: AsyncSession = Depends(get_db),
):
    messages = await chat_service.get_session_messages(db, user.user_id, session_id, limit)
    return [ChatMessageOut.from_row(m) for m in messages]
