"""
Serves stored uploads. A file is only visible to the user whose document
references it; everyone else gets 404.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.auth import AuthenticatedUser
from ..core.dependencies import get_audit_context, get_db, get_storage_dep, get_user
from ..core.exceptions import StorageError
from ..core.storage import LocalStorage, StorageBackend
from ..repositories import documents as documents_repo
from ..services import audit
from ..services.audit import AuditActions, AuditContext

logger = logging.getLogger(__name__)

files_router = APIRouter(tags=["files"])


@files_router.get("/uploads/{filename}")
async def serve_upload(
    filename: str,
    user: AuthenticatedUser = Depends(get_user),
    db: AsyncSession = Depends(get_db),
    storage: StorageBackend = Depends(get_storage_dep),
    context: AuditContext = Depends(get_audit_context),
):
    doc = await documents_repo.get_document_by_file_name(db, user.user_id, filename)
    if doc is None:
        raise HTTPException(status_code=404, detail="File not found")

    await audit.log_document_action(
        AuditActions.DOCUMENT_DOWNLOAD, doc.id, context, {"fileName": doc.original_name}
    )

    if isinstance(storage, LocalStorage):
        path = storage.path_for(doc.file_name, user.user_id)
        if not path.is_file():
            raise HTTPException(status_code=404, detail="File not found")
        return FileResponse(path, media_type=doc.mime_type, filename=doc.original_name)

    try:
        data = await storage.read(doc.file_name, user.user_id)
    except StorageError:
        logger.exception("Stored object missing for document %s", doc.id)
        raise HTTPException(status_code=404, detail="File not found")
    return Response(
        content=data,
        media_type=doc.mime_type,
        headers={"Content-Disposition": f'inline; filename="{doc.original_name}"'},
    )
