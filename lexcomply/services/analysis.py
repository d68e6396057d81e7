"""
Analysis client, the boundary to the LLM.

Four entry points, each a single request/response round trip:
  analyze_document   → DocumentAnalysisResult
  chat               → ChatReply
  generate_contract  → plain text
  compliance_check   → ComplianceCheckResult

Any transport, HTTP, JSON or schema problem raises AIServiceError.
No retries and no local business logic live here.
"""

import logging
from typing import Literal, Optional

from pydantic import Field, ValidationError, field_validator

from ..core.exceptions import AIServiceError
from ..core.schemas import CamelModel
from . import llm

logger = logging.getLogger(__name__)


# ── Result types ─────────────────────────────────────────────────────

class Risk(CamelModel):
    type: str = ""
    severity: Literal["low", "medium", "high"] = "medium"
    description: str = ""

    @field_validator("severity", mode="before")
    @classmethod
    def _lower(cls, v):
        return v.lower() if isinstance(v, str) else v


class GdprCompliance(CamelModel):
    score: float = Field(default=0, ge=0, le=100)
    issues: list[str] = []
    recommendations: list[str] = []


class DocumentAnalysisResult(CamelModel):
    summary: str = ""
    compliance_score: float = Field(ge=0, le=100)
    key_findings: list[str] = []
    recommendations: list[str] = []
    risks: list[Risk] = []
    gdpr_compliance: GdprCompliance = Field(default_factory=GdprCompliance)
    tokens_used: Optional[int] = Field(default=None, exclude=True)


class ChatReply(CamelModel):
    message: str
    suggestions: list[str] = []
    related_documents: list[str] = []
    tokens_used: Optional[int] = Field(default=None, exclude=True)


class ComplianceCheckResult(CamelModel):
    score: float = Field(ge=0, le=100)
    issues: list[str] = []
    recommendations: list[str] = []
    tokens_used: Optional[int] = Field(default=None, exclude=True)


# ── Prompts ──────────────────────────────────────────────────────────

DOCUMENT_SYSTEM = (
    "You are a legal compliance expert specializing in GDPR, data protection "
    "and contract analysis. Provide detailed, actionable insights."
)

DOCUMENT_PROMPT = """Analyze the legal document below for compliance and legal risk.
Document: {name}
Type: {document_type}

Content:
{text}

Reply with a JSON object of this shape:
{{
  "summary": "short summary of the document",
  "complianceScore": 0-100,
  "keyFindings": ["..."],
  "recommendations": ["..."],
  "risks": [{{"type": "Data Protection", "severity": "low|medium|high", "description": "..."}}],
  "gdprCompliance": {{"score": 0-100, "issues": ["..."], "recommendations": ["..."]}}
}}"""

CHAT_SYSTEM = (
    "You are a professional legal AI assistant. Give accurate, helpful answers "
    "about legal compliance, GDPR, data protection and contract management."
)

CHAT_PROMPT = """User role: {role}
Context: {context}

User message: {message}

Answer the question, suggest sensible next steps and name documents or
resources that would help. Reply with a JSON object:
{{"message": "...", "suggestions": ["..."], "relatedDocuments": ["..."]}}"""

CONTRACT_SYSTEM = (
    "You are a legal contract specialist for {jurisdiction}. "
    "Draft professional, legally compliant contract templates."
)

CONTRACT_PROMPT = """Draft a professional {contract_type} contract template for {jurisdiction}.

Requirements:
{requirements}

The draft must comply with local law, be clear, contain every necessary
clause and be ready for customization. Format it as a complete contract with
numbered sections."""

COMPLIANCE_SYSTEM = "You are a {label} compliance expert. Provide a detailed compliance analysis."

COMPLIANCE_PROMPT = """Run a {label} compliance check on this document:

{text}

Reply with a JSON object:
{{"score": 0-100, "issues": ["..."], "recommendations": ["..."]}}"""


# ── Entry points ─────────────────────────────────────────────────────

async def analyze_document(
    name: str, text: str, document_type: str = "legal"
) -> DocumentAnalysisResult:
    prompt = DOCUMENT_PROMPT.format(name=name, document_type=document_type, text=text)
    data, tokens = await llm.chat_json(DOCUMENT_SYSTEM, prompt, temperature=0.3)
    result = _parse(DocumentAnalysisResult, data, "document analysis")
    result.tokens_used = tokens
    return result


async def chat(user_message: str, context: str = "", role: str = "user") -> ChatReply:
    prompt = CHAT_PROMPT.format(role=role, context=context, message=user_message)
    data, tokens = await llm.chat_json(CHAT_SYSTEM, prompt, temperature=0.7)
    result = _parse(ChatReply, data, "chat")
    result.tokens_used = tokens
    return result


async def generate_contract(
    contract_type: str, requirements: str, jurisdiction: str = "Germany"
) -> tuple[str, int]:
    """Returns (contract_text, tokens_used)."""
    system = CONTRACT_SYSTEM.format(jurisdiction=jurisdiction)
    prompt = CONTRACT_PROMPT.format(
        contract_type=contract_type, jurisdiction=jurisdiction, requirements=requirements
    )
    text, tokens = await llm.chat_text(system, prompt, temperature=0.2)
    if not text.strip():
        logger.error("Contract generation returned empty text")
        raise AIServiceError()
    return text, tokens


async def compliance_check(text: str, compliance_type: str = "gdpr") -> ComplianceCheckResult:
    label = compliance_type.upper()
    data, tokens = await llm.chat_json(
        COMPLIANCE_SYSTEM.format(label=label),
        COMPLIANCE_PROMPT.format(label=label, text=text),
        temperature=0.1,
    )
    result = _parse(ComplianceCheckResult, data, "compliance check")
    result.tokens_used = tokens
    return result


def _parse(model, data: dict, what: str):
    try:
        return model.model_validate(data)
    except ValidationError as e:
        logger.error("Malformed %s reply: %s", what, e)
        raise AIServiceError() from e
