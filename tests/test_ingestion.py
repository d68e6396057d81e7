from __future__ import annotations

import pytest
from sqlalchemy import select

from conftest import DEMO_USER_ID
from lexcomply.core.auth import dev_user
from lexcomply.core.database import get_session_factory
from lexcomply.core.exceptions import UploadValidationError
from lexcomply.core.storage import generate_file_name, get_storage
from lexcomply.models import AiAnalysis, AuditLog, Document, DocumentStatus
from lexcomply.repositories import analyses as analyses_repo
from lexcomply.repositories import documents as documents_repo
from lexcomply.repositories import users as users_repo
from lexcomply.services.audit import AuditContext
from lexcomply.services.ingestion import (
    AnalysisJob,
    IncomingFile,
    process_document,
    validate_batch,
)

DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


async def _seed(data: bytes, original_name: str, mime_type: str) -> AnalysisJob:
    # Store a file and an uploaded row the way the upload path does.
    file_name = generate_file_name(original_name)
    url = await get_storage().save(data, file_name, DEMO_USER_ID, mime_type)
    async with get_session_factory()() as db:
        await users_repo.upsert_user(db, dev_user())
        doc = await documents_repo.create_document(
            db,
            user_id=DEMO_USER_ID,
            file_name=file_name,
            original_name=original_name,
            file_size=len(data),
            mime_type=mime_type,
            file_url=url,
        )
        await db.commit()
    return AnalysisJob(
        document_id=doc.id,
        user_id=DEMO_USER_ID,
        file_name=file_name,
        original_name=original_name,
        mime_type=mime_type,
        file_size=len(data),
        context=AuditContext(user_id=DEMO_USER_ID),
    )


async def _load(document_id: int) -> Document | None:
    async with get_session_factory()() as db:
        return await db.get(Document, document_id)


async def _rows(model, **filters) -> list:
    async with get_session_factory()() as db:
        stmt = select(model)
        for name, value in filters.items():
            stmt = stmt.where(getattr(model, name) == value)
        return list((await db.execute(stmt)).scalars().all())


def test_validate_batch_accepts_allowed_types() -> None:
    validate_batch([
        IncomingFile("a.pdf", "application/pdf", b"%PDF-1.7"),
        IncomingFile("b.doc", "application/msword", b"\xd0\xcf"),
        IncomingFile("c.docx", DOCX, b"PK"),
        IncomingFile("d.txt", "text/plain; charset=utf-8", b"text"),
        IncomingFile("e.rtf", "text/rtf", b"{\\rtf1}"),
    ])


def test_validate_batch_rejects_empty_batch() -> None:
    with pytest.raises(UploadValidationError, match="No files uploaded"):
        validate_batch([])


def test_validate_batch_rejects_zero_byte_file() -> None:
    with pytest.raises(UploadValidationError, match="'blank.pdf' is empty"):
        validate_batch([
            IncomingFile("ok.txt", "text/plain", b"text"),
            IncomingFile("blank.pdf", "application/pdf", b""),
        ])


@pytest.mark.asyncio
async def test_success_writes_result_and_ai_analysis(fake_llm) -> None:
    job = await _seed(b"Controller and processor agree as follows.", "dpa.txt", "text/plain")

    status = await process_document(job)
    assert status == DocumentStatus.ANALYZED

    doc = await _load(job.document_id)
    assert doc.status == DocumentStatus.ANALYZED
    assert float(doc.compliance_score) == 82.0
    assert doc.analysis_result["complianceScore"] == 82
    assert doc.tags == ["Processes personal data", "No retention period defined"]

    analyses = await _rows(AiAnalysis, document_id=job.document_id)
    assert len(analyses) == 1
    assert analyses[0].analysis_type == "document_analysis"
    assert analyses[0].prompt == "Analyze document: dpa.txt"
    assert analyses[0].tokens_used == 321
    assert "Controller and processor" in fake_llm.calls[0]


@pytest.mark.asyncio
async def test_ai_analyses_are_listed_per_document_and_counted(fake_llm) -> None:
    first = await _seed(b"First agreement text.", "a.txt", "text/plain")
    second = await _seed(b"Second agreement text.", "b.txt", "text/plain")
    await process_document(first)
    await process_document(second)

    async with get_session_factory()() as db:
        everything = await analyses_repo.list_ai_analyses(db, DEMO_USER_ID)
        only_first = await analyses_repo.list_ai_analyses(
            db, DEMO_USER_ID, document_id=first.document_id
        )
        user = await users_repo.get_user(db, DEMO_USER_ID)

    assert [a.document_id for a in everything] == [second.document_id, first.document_id]
    assert [a.document_id for a in only_first] == [first.document_id]
    assert user.plan_usage == 2


@pytest.mark.asyncio
async def test_llm_failure_marks_document_failed(fake_llm) -> None:
    fake_llm.fail = True
    job = await _seed(b"Some clause.", "clause.txt", "text/plain")

    status = await process_document(job)
    assert status == DocumentStatus.FAILED

    doc = await _load(job.document_id)
    assert doc.status == DocumentStatus.FAILED
    assert doc.analysis_result["error"] == "Failed to analyze document"
    assert doc.analysis_result["reason"] == "AI service failure"
    assert doc.compliance_score is None
    assert await _rows(AiAnalysis, document_id=job.document_id) == []

    failures = await _rows(AuditLog, action="document.analyze.failed")
    assert [f.resource_id for f in failures] == [str(job.document_id)]


@pytest.mark.asyncio
async def test_malformed_reply_marks_document_failed(fake_llm) -> None:
    fake_llm.document_reply = {"summary": "no score here"}
    job = await _seed(b"Some clause.", "clause.txt", "text/plain")

    assert await process_document(job) == DocumentStatus.FAILED
    assert (await _load(job.document_id)).status == DocumentStatus.FAILED


@pytest.mark.asyncio
async def test_unsupported_format_fails_closed(fake_llm) -> None:
    job = await _seed(b"{\\rtf1 contract}", "contract.rtf", "text/rtf")

    assert await process_document(job) == DocumentStatus.FAILED

    doc = await _load(job.document_id)
    assert "Unsupported format" in doc.analysis_result["reason"]
    assert fake_llm.calls == []


@pytest.mark.asyncio
async def test_timeout_marks_document_failed(fake_llm, monkeypatch) -> None:
    from lexcomply.core.config import get_settings

    monkeypatch.setenv("ANALYSIS_TIMEOUT_SECONDS", "0.2")
    get_settings.cache_clear()
    fake_llm.delay = 5

    job = await _seed(b"Slow clause.", "slow.txt", "text/plain")
    assert await process_document(job) == DocumentStatus.FAILED

    doc = await _load(job.document_id)
    assert doc.status == DocumentStatus.FAILED
    assert "timed out" in doc.analysis_result["reason"]


@pytest.mark.asyncio
async def test_terminal_status_is_never_overwritten(fake_llm) -> None:
    job = await _seed(b"Clause.", "clause.txt", "text/plain")
    assert await process_document(job) == DocumentStatus.ANALYZED

    # A duplicate job finds the document already terminal and does nothing.
    fake_llm.fail = True
    assert await process_document(job) is None
    assert (await _load(job.document_id)).status == DocumentStatus.ANALYZED

    async with get_session_factory()() as db:
        for target in (DocumentStatus.PROCESSING, DocumentStatus.FAILED):
            moved = await documents_repo.transition_status(
                db, DEMO_USER_ID, job.document_id, target
            )
            assert moved is False
        await db.commit()
    assert (await _load(job.document_id)).status == DocumentStatus.ANALYZED
    assert len(await _rows(AiAnalysis, document_id=job.document_id)) == 1


@pytest.mark.asyncio
async def test_start_transition_error_marks_document_failed(fake_llm, monkeypatch) -> None:
    job = await _seed(b"Clause.", "clause.txt", "text/plain")
    real_transition = documents_repo.transition_status
    calls: list[str] = []

    async def flaky_transition(db, user_id, document_id, to_status, **fields):
        calls.append(to_status)
        if len(calls) == 1:
            raise RuntimeError("db down")
        return await real_transition(db, user_id, document_id, to_status, **fields)

    monkeypatch.setattr(documents_repo, "transition_status", flaky_transition)

    assert await process_document(job) == DocumentStatus.FAILED
    assert calls == [DocumentStatus.PROCESSING, DocumentStatus.FAILED]

    doc = await _load(job.document_id)
    assert doc.status == DocumentStatus.FAILED
    assert doc.analysis_result["reason"] == "db down"
    assert fake_llm.calls == []


@pytest.mark.asyncio
async def test_deleted_document_ends_quietly(fake_llm) -> None:
    job = await _seed(b"Clause.", "gone.txt", "text/plain")
    async with get_session_factory()() as db:
        await documents_repo.delete_document(db, DEMO_USER_ID, job.document_id)
        await db.commit()

    assert await process_document(job) is None
    assert fake_llm.calls == []
    assert await _rows(AiAnalysis) == []


@pytest.mark.asyncio
async def test_sibling_failure_does_not_affect_other_documents(fake_llm) -> None:
    good = await _seed(b"Good clause.", "good.txt", "text/plain")
    bad = await _seed(b"\xd0\xcf binary", "legacy.doc", "application/msword")

    assert await process_document(bad) == DocumentStatus.FAILED
    assert await process_document(good) == DocumentStatus.ANALYZED
    assert (await _load(good.document_id)).status == DocumentStatus.ANALYZED
