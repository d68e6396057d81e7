"""
Document endpoints. Upload returns as soon as files are stored;
analysis runs on the background workers.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.auth import AuthenticatedUser
from ..core.config import get_settings
from ..core.dependencies import get_audit_context, get_db, get_user
from ..core.schemas import CamelModel
from ..repositories import documents as documents_repo
from ..services import audit, ingestion
from ..services.audit import AuditActions, AuditContext

logger = logging.getLogger(__name__)

documents_router = APIRouter(tags=["documents"])


class DocumentOut(CamelModel):
    id: int
    file_name: str
    original_name: str
    file_size: int
    mime_type: str
    file_url: str
    status: str
    analysis_result: Optional[dict] = None
    compliance_score: Optional[float] = None
    tags: Optional[list] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class UploadResponse(CamelModel):
    documents: list[DocumentOut]


@documents_router.post("/documents/upload", response_model=UploadResponse)
async def upload_documents(
    files: Optional[list[UploadFile]] = File(default=None),
    user: AuthenticatedUser = Depends(get_user),
    db: AsyncSession = Depends(get_db),
    context: AuditContext = Depends(get_audit_context),
):
    """Upload up to MAX_UPLOAD_FILES legal documents for analysis."""
    settings = get_settings()

    incoming = []
    for f in files or []:
        # One byte past the limit is enough to reject it
        data = await f.read(settings.max_upload_bytes + 1)
        incoming.append(ingestion.IncomingFile(
            filename=f.filename or "document",
            content_type=f.content_type or "",
            data=data,
        ))

    docs = await ingestion.accept_uploads(db, user.user_id, incoming, context)
    return UploadResponse(documents=[DocumentOut.model_validate(d) for d in docs])


@documents_router.get("/documents", response_model=list[DocumentOut])
async def list_documents(
    limit: int = Query(default=10, ge=1, le=1000),
    user: AuthenticatedUser = Depends(get_user),
    db: AsyncSession = Depends(get_db),
):
    docs = await documents_repo.list_documents(db, user.user_id, limit=limit)
    return [DocumentOut.model_validate(d) for d in docs]


@documents_router.get("/documents/{document_id}", response_model=DocumentOut)
async def get_document(
    document_id: int,
    user: AuthenticatedUser = Depends(get_user),
    db: AsyncSession = Depends(get_db),
    context: AuditContext = Depends(get_audit_context),
):
    doc = await documents_repo.get_document(db, user.user_id, document_id)
    if doc is None:
        raise HTTPException(status_code=404, detail="Document not found")

    out = DocumentOut.model_validate(doc)
    await audit.log_document_action(
        AuditActions.DATA_VIEW, document_id, context, {"fileName": doc.original_name}
    )
    return out


@documents_router.delete("/documents/{document_id}")
async def delete_document(
    document_id: int,
    user: AuthenticatedUser = Depends(get_user),
    db: AsyncSession = Depends(get_db),
    context: AuditContext = Depends(get_audit_context),
):
    """Delete the document row and its stored file, whatever its status."""
    removed = await ingestion.remove_document(db, user.user_id, document_id, context)
    if not removed:
        raise HTTPException(status_code=404, detail="Document not found")
    return {"message": "Document deleted successfully"}
