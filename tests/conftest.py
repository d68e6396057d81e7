from __future__ import annotations

import asyncio
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient

from lexcomply.core.config import get_settings
from lexcomply.core.database import close_db, init_db
from lexcomply.core.exceptions import AIServiceError
from lexcomply.core.flags import get_flags
from lexcomply.factory import create_app
from lexcomply.services import analysis, llm
from lexcomply.services.ingestion import close_analysis_queue, get_analysis_queue

DEMO_USER_ID = "demo-user-123"

DOCUMENT_REPLY: dict[str, Any] = {
    "summary": "Data processing agreement between a controller and a processor.",
    "complianceScore": 82,
    "keyFindings": ["Processes personal data", "No retention period defined"],
    "recommendations": ["Define a retention period", "Name a data protection officer"],
    "risks": [
        {"type": "Data Protection", "severity": "Medium", "description": "Retention is open-ended"}
    ],
    "gdprCompliance": {
        "score": 75,
        "issues": ["Retention period missing"],
        "recommendations": ["Add Art. 28 clauses"],
    },
}

CHAT_REPLY: dict[str, Any] = {
    "message": "Article 17 GDPR grants the right to erasure.",
    "suggestions": ["Review your deletion workflow"],
    "relatedDocuments": ["Privacy policy"],
}

CHECK_REPLY: dict[str, Any] = {
    "score": 90,
    "issues": ["Cookie banner lacks reject option"],
    "recommendations": ["Add a reject-all button"],
}


class FakeLLM:
    """Stands in for the chat-completions boundary. Replies are keyed by system prompt."""

    def __init__(self) -> None:
        self.document_reply: dict[str, Any] = dict(DOCUMENT_REPLY)
        self.chat_reply: dict[str, Any] = dict(CHAT_REPLY)
        self.check_reply: dict[str, Any] = dict(CHECK_REPLY)
        self.contract_text = "1. Parties\n2. Subject matter\n3. Term"
        self.fail = False
        self.delay = 0.0
        self.calls: list[str] = []

    async def chat_json(self, system: str, prompt: str, temperature: float = 0.3):
        self.calls.append(prompt)
        await self._maybe_fail()
        if system == analysis.DOCUMENT_SYSTEM:
            return dict(self.document_reply), 321
        if system == analysis.CHAT_SYSTEM:
            return dict(self.chat_reply), 55
        return dict(self.check_reply), 99

    async def chat_text(self, system: str, prompt: str, temperature: float = 0.2):
        self.calls.append(prompt)
        await self._maybe_fail()
        return self.contract_text, 210

    async def _maybe_fail(self) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise AIServiceError()


@pytest.fixture(autouse=True)
async def app_env(tmp_path, monkeypatch):
    # Isolated sqlite database, upload dir and local fallbacks for every test.
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'lexcomply.db'}")
    monkeypatch.setenv("UPLOAD_DIR", str(tmp_path / "uploads"))
    monkeypatch.setenv("FF_USE_AUTH0", "false")
    monkeypatch.setenv("FF_USE_S3", "false")
    monkeypatch.setenv("FF_USE_REDIS", "false")
    monkeypatch.setenv("FF_USE_OCR", "false")
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")
    monkeypatch.setenv("ANALYSIS_WORKERS", "2")
    get_settings.cache_clear()
    get_flags.cache_clear()

    await init_db()
    yield tmp_path

    await close_analysis_queue()
    await llm.close_client()
    await close_db()
    get_settings.cache_clear()
    get_flags.cache_clear()


@pytest.fixture
def fake_llm(monkeypatch) -> FakeLLM:
    fake = FakeLLM()
    monkeypatch.setattr(llm, "chat_json", fake.chat_json)
    monkeypatch.setattr(llm, "chat_text", fake.chat_text)
    return fake


@pytest.fixture
async def client(app_env):
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


async def wait_for_analysis() -> None:
    # Block until the background workers have drained every queued job.
    await get_analysis_queue().join()
