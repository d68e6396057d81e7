"""
Text extraction from stored documents, dispatched by MIME type.
- plain text read verbatim
- pdfplumber for PDFs, AIML OCR for scanned PDFs (flagged)
- python-docx for DOCX
Formats without an extractor (binary .doc, RTF) fail closed.
"""

import asyncio
import base64
import logging
from io import BytesIO
from typing import Awaitable, Callable

import httpx

from ..core.config import get_settings
from ..core.exceptions import ExtractionError, UnsupportedFormatError
from ..core.flags import get_flags

logger = logging.getLogger(__name__)

PDF = "application/pdf"
DOC = "application/msword"
DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
TXT = "text/plain"
RTF = "text/rtf"

# Below this many characters a PDF is treated as scanned
OCR_THRESHOLD = 100

Extractor = Callable[[bytes, str], Awaitable[str]]


async def extract_text(file_bytes: bytes, mime_type: str, filename: str = "") -> str:
    """
    Extract plain text. Raises UnsupportedFormatError when no extractor is
    registered for the type, ExtractionError when the file yields no text.
    """
    extractor = EXTRACTORS.get(normalize_mime(mime_type))
    if extractor is None:
        raise UnsupportedFormatError(f"Unsupported format: {mime_type}")

    try:
        text = await extractor(file_bytes, filename)
    except ExtractionError:
        raise
    except Exception as e:
        raise ExtractionError(f"Failed to extract text from {filename or mime_type}: {e}") from e

    if not text.strip():
        raise ExtractionError(f"No extractable text in {filename or mime_type}")

    logger.info("Extracted %d chars from %s (%s)", len(text), filename, mime_type)
    return text


def normalize_mime(mime_type: str) -> str:
    # "text/plain; charset=utf-8" → "text/plain"
    return (mime_type or "").split(";", 1)[0].strip().lower()


# ── Extractors ───────────────────────────────────────────────────────

async def _extract_plaintext(file_bytes: bytes, filename: str) -> str:
    return file_bytes.decode("utf-8", errors="replace")


async def _extract_pdf(file_bytes: bytes, filename: str) -> str:
    text = await asyncio.to_thread(_pdf_text_layer, file_bytes)

    # No text layer → probably scanned
    flags = get_flags()
    if flags.use_ocr and len(text.strip()) < OCR_THRESHOLD:
        ocr_text = await _ocr_extract(file_bytes)
        if len(ocr_text.strip()) > len(text.strip()):
            logger.info("Used OCR for %s", filename)
            text = ocr_text

    return text


def _pdf_text_layer(file_bytes: bytes) -> str:
    """Extract text from PDF using pdfplumber (local, free)."""
    import pdfplumber

    pages_text = []
    with pdfplumber.open(BytesIO(file_bytes)) as pdf:
        for page in pdf.pages:
            text = page.extract_text() or ""
            # Tables come out as pipe-separated rows
            for table in page.extract_tables() or []:
                for row in table:
                    if row:
                        text += "\n" + " | ".join(
                            str(cell) if cell else "" for cell in row
                        )
            pages_text.append(text)
    return "\n\n".join(pages_text)


async def _extract_docx(file_bytes: bytes, filename: str) -> str:
    return await asyncio.to_thread(_docx_paragraphs, file_bytes)


def _docx_paragraphs(file_bytes: bytes) -> str:
    import docx

    doc = docx.Document(BytesIO(file_bytes))
    return "\n\n".join(para.text for para in doc.paragraphs if para.text)


async def _ocr_extract(file_bytes: bytes) -> str:
    """OCR via AIML API (Google Document AI). Only called if FF_USE_OCR=true."""
    settings = get_settings()
    if not settings.aiml_api_key:
        logger.warning("OCR requested but AIML_API_KEY not set")
        return ""

    encoded = base64.b64encode(file_bytes).decode("utf-8")
    async with httpx.AsyncClient(timeout=60) as client:
        resp = await client.post(
            f"{settings.aiml_base_url.rstrip('/')}/ocr",
            json={
                "model": settings.aiml_ocr_model,
                "document": encoded,
                "mimeType": PDF,
            },
            headers={
                "Authorization": f"Bearer {settings.aiml_api_key}",
                "Content-Type": "application/json",
            },
        )

    if resp.status_code not in (200, 201):
        raise ExtractionError(f"OCR API error: {resp.status_code} {resp.text[:200]}")

    result = resp.json()
    if result.get("text"):
        return result["text"]

    texts = []
    for page in result.get("pages", []):
        if page.get("markdown"):
            texts.append(page["markdown"])
        elif page.get("text"):
            texts.append(page["text"])
    return "\n\n".join(texts)


# MIME type → extractor. DOC and RTF are accepted on upload but have none.
EXTRACTORS: dict[str, Extractor] = {
    TXT: _extract_plaintext,
    PDF: _extract_pdf,
    DOCX: _extract_docx,
}
