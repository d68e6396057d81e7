from __future__ import annotations

import pytest
from sqlalchemy import select

from lexcomply.core.database import get_session_factory
from lexcomply.models import AiAnalysis, AuditLog, ChatMessage


async def _chat_rows(session_id: str) -> list[ChatMessage]:
    async with get_session_factory()() as db:
        result = await db.execute(
            select(ChatMessage).where(ChatMessage.session_id == session_id).order_by(ChatMessage.id)
        )
        return list(result.scalars().all())


@pytest.mark.asyncio
async def test_chat_round_trip_is_stored_in_order(client, fake_llm) -> None:
    resp = await client.post(
        "/api/chat", json={"message": "What is GDPR Article 17?", "sessionId": "s-fresh"}
    )
    assert resp.status_code == 200
    assert resp.json() == {
        "response": "Article 17 GDPR grants the right to erasure.",
        "suggestions": ["Review your deletion workflow"],
        "relatedDocuments": ["Privacy policy"],
    }

    rows = await _chat_rows("s-fresh")
    assert [r.is_from_user for r in rows] == [True, False]

    history = (await client.get("/api/chat/s-fresh")).json()
    assert [m["isFromUser"] for m in history] == [True, False]
    assert history[0]["message"] == "What is GDPR Article 17?"
    assert history[1]["metadata"]["suggestions"] == ["Review your deletion workflow"]

    async with get_session_factory()() as db:
        audits = (
            await db.execute(select(AuditLog).where(AuditLog.action == "ai.chat"))
        ).scalars().all()
    assert len(audits) == 1
    assert audits[0].details["message"] == "What is GDPR Article 17?"


@pytest.mark.asyncio
async def test_history_returns_newest_window_chronologically(client, fake_llm) -> None:
    for i in range(3):
        await client.post("/api/chat", json={"message": f"question {i}", "sessionId": "s-window"})

    history = (await client.get("/api/chat/s-window", params={"limit": 4})).json()
    assert [m["message"] for m in history] == [
        "question 1",
        "Article 17 GDPR grants the right to erasure.",
        "question 2",
        "Article 17 GDPR grants the right to erasure.",
    ]


@pytest.mark.asyncio
async def test_sessions_are_isolated(client, fake_llm) -> None:
    await client.post("/api/chat", json={"message": "first", "sessionId": "s-a"})
    assert (await client.get("/api/chat/s-b")).json() == []


@pytest.mark.asyncio
async def test_chat_requires_message_and_session(client, fake_llm) -> None:
    assert (await client.post("/api/chat", json={"message": "hi"})).status_code == 400
    assert (await client.post("/api/chat", json={"sessionId": "s"})).status_code == 400
    assert fake_llm.calls == []


@pytest.mark.asyncio
async def test_chat_llm_failure_keeps_user_message(client, fake_llm) -> None:
    fake_llm.fail = True
    resp = await client.post("/api/chat", json={"message": "hello?", "sessionId": "s-down"})
    assert resp.status_code == 502
    assert resp.json() == {"detail": "AI service failure"}

    rows = await _chat_rows("s-down")
    assert [(r.message, r.is_from_user) for r in rows] == [("hello?", True)]


@pytest.mark.asyncio
async def test_generate_contract(client, fake_llm) -> None:
    resp = await client.post(
        "/api/contracts/generate",
        json={"contractType": "NDA", "requirements": "Mutual, two years"},
    )
    assert resp.status_code == 200
    assert resp.json()["contract"].startswith("1. Parties")
    assert "Germany" in fake_llm.calls[0]

    async with get_session_factory()() as db:
        rows = (await db.execute(select(AiAnalysis))).scalars().all()
        audits = (
            await db.execute(select(AuditLog).where(AuditLog.action == "ai.contract.generate"))
        ).scalars().all()
    assert [r.analysis_type for r in rows] == ["contract_generation"]
    assert audits[0].details == {"contractType": "NDA", "jurisdiction": "Germany"}


@pytest.mark.asyncio
async def test_generate_contract_requires_fields(client, fake_llm) -> None:
    resp = await client.post("/api/contracts/generate", json={"contractType": "NDA"})
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Contract type and requirements are required"
