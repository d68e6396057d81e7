from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from conftest import DEMO_USER_ID
from lexcomply.core.auth import dev_user
from lexcomply.core.database import get_session_factory
from lexcomply.models import AuditLog
from lexcomply.repositories import audit as audit_repo
from lexcomply.repositories import users as users_repo
from lexcomply.services import audit
from lexcomply.services.audit import AuditActions, AuditContext, AuditResources


async def _all_logs() -> list[AuditLog]:
    async with get_session_factory()() as db:
        return list((await db.execute(select(AuditLog).order_by(AuditLog.id))).scalars().all())


def test_format_audit_log_with_user_and_resource_id() -> None:
    log = AuditLog(
        user_id="u-1",
        action="document.upload",
        resource="document",
        resource_id="42",
        timestamp=datetime(2024, 3, 1, 9, 30, 5, tzinfo=timezone.utc),
    )
    assert audit.format_audit_log(log) == (
        "[2024-03-01 09:30:05] u-1 performed document.upload on document (42)"
    )


def test_format_audit_log_system_actor() -> None:
    log = AuditLog(
        action="system.error",
        resource="system",
        timestamp=datetime(2024, 3, 1, 9, 30, 5, tzinfo=timezone.utc),
    )
    assert audit.format_audit_log(log) == "[2024-03-01 09:30:05] System performed system.error on system"


@pytest.mark.asyncio
async def test_record_merges_session_and_additional_data() -> None:
    context = AuditContext(
        user_id=None,
        ip_address="10.0.0.7",
        user_agent="pytest",
        session_id="sess-1",
        additional_data={"source": "cli"},
    )
    await audit.record(AuditActions.SYSTEM_ERROR, AuditResources.SYSTEM, context=context,
                       details={"code": 7})

    logs = await _all_logs()
    assert len(logs) == 1
    assert logs[0].details == {"code": 7, "sessionId": "sess-1", "source": "cli"}
    assert logs[0].ip_address == "10.0.0.7"
    assert logs[0].user_id is None


@pytest.mark.asyncio
async def test_record_never_raises(monkeypatch) -> None:
    async def broken(*args, **kwargs):
        raise RuntimeError("database is gone")

    monkeypatch.setattr(audit_repo, "create_audit_log", broken)

    await audit.record(AuditActions.DATA_VIEW, AuditResources.DOCUMENT, "1", AuditContext())
    await audit.log_document_action(AuditActions.DOCUMENT_DELETE, 1, AuditContext())
    assert await _all_logs() == []


@pytest.mark.asyncio
async def test_audit_failure_does_not_break_request(client, fake_llm, monkeypatch) -> None:
    async def broken(*args, **kwargs):
        raise RuntimeError("audit table locked")

    monkeypatch.setattr(audit_repo, "create_audit_log", broken)

    resp = await client.post("/api/chat", json={"message": "hi", "sessionId": "s-1"})
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_audit_logs_endpoint_is_scoped_and_newest_first(client) -> None:
    async with get_session_factory()() as db:
        await users_repo.upsert_user(db, dev_user())
        await db.commit()
    mine = AuditContext(user_id=DEMO_USER_ID)
    await audit.log_ai_action(AuditActions.AI_CHAT, mine, {"n": 1})
    await audit.log_ai_action(AuditActions.CONTRACT_GENERATE, mine, {"n": 2})
    await audit.record(AuditActions.SYSTEM_ERROR, AuditResources.SYSTEM)

    resp = await client.get("/api/audit-logs", params={"limit": 2})
    assert resp.status_code == 200
    logs = resp.json()
    assert [log["action"] for log in logs] == ["ai.contract.generate", "ai.chat"]
    assert all(log["userId"] == DEMO_USER_ID for log in logs)
    assert "performed ai.contract.generate on ai_analysis" in logs[0]["summary"]


@pytest.mark.asyncio
async def test_audit_statistics() -> None:
    async with get_session_factory()() as db:
        await users_repo.upsert_user(db, dev_user())
        old = datetime.now(timezone.utc) - timedelta(days=3)
        for _ in range(3):
            await audit_repo.create_audit_log(
                db, user_id=DEMO_USER_ID, action="document.upload", resource="document"
            )
        await audit_repo.create_audit_log(
            db, user_id=DEMO_USER_ID, action="ai.chat", resource="ai_analysis"
        )
        stale = await audit_repo.create_audit_log(
            db, user_id=DEMO_USER_ID, action="ai.chat", resource="ai_analysis"
        )
        stale.timestamp = old
        await db.commit()

        stats = await audit.get_audit_statistics(db, DEMO_USER_ID)

    assert stats["totalActions"] == 5
    assert stats["recentActions"] == 4
    assert stats["topActions"][0] == {"action": "document.upload", "count": 3}
    assert stats["topActions"][1] == {"action": "ai.chat", "count": 2}


def test_audit_vocabulary_covers_recorded_actions_only() -> None:
    actions = {v for k, v in vars(AuditActions).items() if k.isupper()}
    assert actions == {
        "document.upload",
        "document.download",
        "document.delete",
        "document.analyze",
        "document.analyze.failed",
        "ai.chat",
        "ai.contract.generate",
        "compliance.check",
        "compliance.report.generate",
        "compliance.report.archive",
        "user.create",
        "data.view",
        "system.error",
    }
    resources = {v for k, v in vars(AuditResources).items() if k.isupper()}
    assert resources == {"user", "document", "ai_analysis", "compliance_report", "system"}
