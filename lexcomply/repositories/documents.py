"""
Document rows. Every read and write is filtered by owner.
"""

from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.base import utcnow
from ..models.document import ALLOWED_TRANSITIONS, Document, DocumentStatus


async def create_document(
    db: AsyncSession,
    *,
    user_id: str,
    file_name: str,
    original_name: str,
    file_size: int,
    mime_type: str,
    file_url: str,
) -> Document:
    doc = Document(
        user_id=user_id,
        file_name=file_name,
        original_name=original_name,
        file_size=file_size,
        mime_type=mime_type,
        file_url=file_url,
        status=DocumentStatus.UPLOADED,
    )
    db.add(doc)
    await db.flush()
    return doc


async def list_documents(db: AsyncSession, user_id: str, limit: int = 10) -> list[Document]:
    """Newest first."""
    result = await db.execute(
        select(Document)
        .where(Document.user_id == user_id)
        .order_by(Document.created_at.desc(), Document.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_document(db: AsyncSession, user_id: str, document_id: int) -> Optional[Document]:
    # None for another user's document keeps 404 semantics
    result = await db.execute(
        select(Document).where(Document.id == document_id, Document.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def get_document_by_file_name(
    db: AsyncSession, user_id: str, file_name: str
) -> Optional[Document]:
    result = await db.execute(
        select(Document).where(Document.file_name == file_name, Document.user_id == user_id)
    )
    return result.scalars().first()


async def update_document(
    db: AsyncSession, user_id: str, document_id: int, **fields
) -> Optional[Document]:
    """Partial merge of the given fields. Stamps updated_at."""
    doc = await get_document(db, user_id, document_id)
    if doc is None:
        return None
    for name, value in fields.items():
        setattr(doc, name, value)
    doc.updated_at = utcnow()
    await db.flush()
    return doc


async def transition_status(
    db: AsyncSession, user_id: str, document_id: int, to_status: str, **fields
) -> bool:
    """
    Move a document to `to_status` only from one of its allowed predecessors.
    Returns False when no row matched (deleted, not owned, or already terminal).
    """
    from_statuses = ALLOWED_TRANSITIONS[to_status]
    result = await db.execute(
        update(Document)
        .where(
            Document.id == document_id,
            Document.user_id == user_id,
            Document.status.in_(from_statuses),
        )
        .values(status=to_status, updated_at=utcnow(), **fields)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def delete_document(db: AsyncSession, user_id: str, document_id: int) -> bool:
    result = await db.execute(
        delete(Document)
        .where(Document.id == document_id, Document.user_id == user_id)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def count_documents(db: AsyncSession, user_id: str) -> int:
    result = await db.execute(
        select(func.count()).select_from(Document).where(Document.user_id == user_id)
    )
    return int(result.scalar() or 0)
