"""
Document ingestion pipeline.

Upload path (in the request):
    validate whole batch → store files → rows with status=uploaded → audit → enqueue

Analysis path (detached, one worker per job):
    uploaded → processing → extract text → LLM analysis → analyzed
                                     any error or timeout → failed

Each job touches only its own document row. Status updates are conditional
on the expected predecessor, so a document deleted mid-analysis simply
drops out and a terminal status is never overwritten.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import get_settings
from ..core.database import get_session_factory
from ..core.exceptions import UploadValidationError
from ..core.storage import generate_file_name, get_storage
from ..models.analysis import AnalysisType
from ..models.document import Document, DocumentStatus
from ..repositories import analyses as analyses_repo
from ..repositories import documents as documents_repo
from . import analysis, audit, extraction, realtime
from .analysis_queue import AnalysisQueue
from .audit import AuditActions, AuditContext

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = frozenset({
    extraction.PDF,
    extraction.DOC,
    extraction.DOCX,
    extraction.TXT,
    extraction.RTF,
})

FAILED_RESULT_MESSAGE = "Failed to analyze document"


@dataclass
class IncomingFile:
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class AnalysisJob:
    document_id: int
    user_id: str
    file_name: str
    original_name: str
    mime_type: str
    file_size: int
    context: AuditContext = field(default_factory=AuditContext)


# ── Upload path ──────────────────────────────────────────────────────

def validate_batch(files: list[IncomingFile]) -> None:
    """Reject the whole batch on the first bad file. Nothing is persisted."""
    settings = get_settings()
    max_mb = settings.max_upload_bytes // (1024 * 1024)

    if not files:
        raise UploadValidationError("No files uploaded")
    if len(files) > settings.max_upload_files:
        raise UploadValidationError(
            f"Too many files. Maximum {settings.max_upload_files} files per upload."
        )

    for f in files:
        mime = extraction.normalize_mime(f.content_type)
        if mime not in ALLOWED_MIME_TYPES:
            raise UploadValidationError(
                f"Invalid file type for '{f.filename}'. "
                "Only PDF, DOC, DOCX, TXT, and RTF files are allowed."
            )
        if f.size > settings.max_upload_bytes:
            raise UploadValidationError(
                f"File '{f.filename}' too large. Maximum size is {max_mb}MB."
            )
        if f.size == 0:
            raise UploadValidationError(f"File '{f.filename}' is empty.")


async def accept_uploads(
    db: AsyncSession,
    user_id: str,
    files: list[IncomingFile],
    context: AuditContext,
) -> list[Document]:
    """
    Store a validated batch and queue each document for analysis.
    Returns the created rows without waiting for analysis.
    """
    validate_batch(files)

    storage = get_storage()
    documents: list[Document] = []
    stored: list[str] = []

    try:
        for f in files:
            file_name = generate_file_name(f.filename)
            mime = extraction.normalize_mime(f.content_type)
            url = await storage.save(f.data, file_name, user_id, mime)
            stored.append(file_name)

            doc = await documents_repo.create_document(
                db,
                user_id=user_id,
                file_name=file_name,
                original_name=f.filename,
                file_size=f.size,
                mime_type=mime,
                file_url=url,
            )
            documents.append(doc)
        await db.commit()
    except Exception:
        await db.rollback()
        for file_name in stored:
            try:
                await storage.delete(file_name, user_id)
            except Exception:
                logger.exception("Could not clean up %s after failed upload", file_name)
        raise

    queue = get_analysis_queue()
    for doc in documents:
        await audit.log_document_action(
            AuditActions.DOCUMENT_UPLOAD,
            doc.id,
            context,
            {"originalName": doc.original_name, "fileSize": doc.file_size},
        )
        queue.submit(AnalysisJob(
            document_id=doc.id,
            user_id=user_id,
            file_name=doc.file_name,
            original_name=doc.original_name,
            mime_type=doc.mime_type,
            file_size=doc.file_size,
            context=context,
        ))

    logger.info("Accepted %d document(s) for user %s", len(documents), user_id)
    return documents


async def remove_document(
    db: AsyncSession, user_id: str, document_id: int, context: AuditContext
) -> bool:
    """Delete the stored file and the row. False if absent or not owned."""
    doc = await documents_repo.get_document(db, user_id, document_id)
    if doc is None:
        return False

    original_name = doc.original_name
    await get_storage().delete(doc.file_name, user_id)
    await documents_repo.delete_document(db, user_id, document_id)
    await db.commit()

    await audit.log_document_action(
        AuditActions.DOCUMENT_DELETE, document_id, context, {"fileName": original_name}
    )
    return True


# ── Analysis path ────────────────────────────────────────────────────

async def process_document(job: AnalysisJob) -> Optional[str]:
    """
    Run one document through extraction and analysis.
    Returns the terminal status reached, or None if the document was gone
    or not in the uploaded state. Never raises except on cancellation.
    """
    settings = get_settings()
    factory = get_session_factory()

    try:
        async with factory() as db:
            started = await documents_repo.transition_status(
                db, job.user_id, job.document_id, DocumentStatus.PROCESSING
            )
            await db.commit()
    except asyncio.CancelledError:
        await _mark_failed(job, "Analysis cancelled")
        raise
    except Exception as e:
        logger.exception("Could not start analysis of document %s", job.document_id)
        await _mark_failed(job, str(e) or e.__class__.__name__)
        return DocumentStatus.FAILED
    if not started:
        logger.warning("Document %s is not awaiting analysis, skipping", job.document_id)
        return None
    await realtime.document_status(job.user_id, job.document_id, DocumentStatus.PROCESSING)

    try:
        result = await asyncio.wait_for(
            _extract_and_analyze(job), timeout=settings.analysis_timeout_seconds
        )
        stored = await _store_analysis(job, result)
    except asyncio.CancelledError:
        await _mark_failed(job, "Analysis cancelled")
        raise
    except asyncio.TimeoutError:
        logger.error(
            "Analysis of document %s timed out after %.0fs",
            job.document_id, settings.analysis_timeout_seconds,
        )
        await _mark_failed(job, f"Analysis timed out after {settings.analysis_timeout_seconds:.0f}s")
        return DocumentStatus.FAILED
    except Exception as e:
        logger.exception("Analysis of document %s failed", job.document_id)
        await _mark_failed(job, str(e) or e.__class__.__name__)
        return DocumentStatus.FAILED

    if not stored:
        logger.info("Document %s was removed during analysis", job.document_id)
        return None

    score = result.compliance_score
    await audit.log_document_action(
        AuditActions.DOCUMENT_ANALYZE,
        job.document_id,
        job.context,
        {"complianceScore": score},
    )
    await realtime.document_status(job.user_id, job.document_id, DocumentStatus.ANALYZED, score)
    logger.info("Document %s analyzed (score=%.1f)", job.document_id, score)
    return DocumentStatus.ANALYZED


async def _extract_and_analyze(job: AnalysisJob) -> analysis.DocumentAnalysisResult:
    data = await get_storage().read(job.file_name, job.user_id)
    text = await extraction.extract_text(data, job.mime_type, job.original_name)
    return await analysis.analyze_document(job.original_name, text)


async def _store_analysis(job: AnalysisJob, result: analysis.DocumentAnalysisResult) -> bool:
    """Status, result and the AiAnalysis row commit together or not at all."""
    async with get_session_factory()() as db:
        updated = await documents_repo.transition_status(
            db,
            job.user_id,
            job.document_id,
            DocumentStatus.ANALYZED,
            analysis_result=result.model_dump(by_alias=True),
            compliance_score=Decimal(str(round(result.compliance_score, 2))),
            tags=list(result.key_findings),
        )
        if not updated:
            await db.rollback()
            return False

        await analyses_repo.create_ai_analysis(
            db,
            user_id=job.user_id,
            document_id=job.document_id,
            analysis_type=AnalysisType.DOCUMENT_ANALYSIS,
            prompt=f"Analyze document: {job.original_name}",
            response=result.model_dump_json(by_alias=True),
            metadata={
                "fileName": job.original_name,
                "fileSize": job.file_size,
                "complianceScore": result.compliance_score,
            },
            tokens_used=result.tokens_used,
        )
        await db.commit()
    return True


async def _mark_failed(job: AnalysisJob, reason: str) -> None:
    try:
        async with get_session_factory()() as db:
            updated = await documents_repo.transition_status(
                db,
                job.user_id,
                job.document_id,
                DocumentStatus.FAILED,
                analysis_result={"error": FAILED_RESULT_MESSAGE, "reason": reason},
            )
            await db.commit()
    except Exception:
        logger.exception("Could not mark document %s as failed", job.document_id)
        return

    if not updated:
        return
    await audit.log_document_action(
        AuditActions.DOCUMENT_ANALYZE_FAILED, job.document_id, job.context, {"reason": reason}
    )
    await realtime.document_status(job.user_id, job.document_id, DocumentStatus.FAILED)


# ── Queue singleton ──────────────────────────────────────────────────

_queue: Optional[AnalysisQueue] = None


def get_analysis_queue() -> AnalysisQueue:
    global _queue
    if _queue is None:
        _queue = AnalysisQueue(process_document, workers=get_settings().analysis_workers)
    return _queue


async def close_analysis_queue() -> None:
    """Stop the workers. Called on shutdown."""
    global _queue
    if _queue is not None:
        await _queue.close(timeout=10)
        _queue = None
