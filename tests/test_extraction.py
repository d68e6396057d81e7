from __future__ import annotations

from io import BytesIO

import pytest

from lexcomply.core.exceptions import ExtractionError, UnsupportedFormatError
from lexcomply.core.flags import get_flags
from lexcomply.services import extraction


@pytest.mark.asyncio
async def test_plain_text_is_read_verbatim() -> None:
    text = await extraction.extract_text("Clause 1: Datenschutz.".encode(), "text/plain")
    assert text == "Clause 1: Datenschutz."


@pytest.mark.asyncio
async def test_mime_parameters_are_ignored() -> None:
    text = await extraction.extract_text(b"hello", "Text/Plain; charset=utf-8", "a.txt")
    assert text == "hello"


@pytest.mark.asyncio
@pytest.mark.parametrize("mime_type", ["application/msword", "text/rtf", "image/png"])
async def test_formats_without_extractor_fail_closed(mime_type: str) -> None:
    with pytest.raises(UnsupportedFormatError):
        await extraction.extract_text(b"data", mime_type)


@pytest.mark.asyncio
async def test_blank_text_is_an_error() -> None:
    with pytest.raises(ExtractionError, match="No extractable text"):
        await extraction.extract_text(b"   \n ", "text/plain", "blank.txt")


@pytest.mark.asyncio
async def test_docx_paragraphs() -> None:
    import docx

    document = docx.Document()
    document.add_paragraph("Article 1 - Parties")
    document.add_paragraph("")
    document.add_paragraph("Article 2 - Confidentiality")
    buf = BytesIO()
    document.save(buf)

    text = await extraction.extract_text(buf.getvalue(), extraction.DOCX, "nda.docx")
    assert text == "Article 1 - Parties\n\nArticle 2 - Confidentiality"


@pytest.mark.asyncio
async def test_corrupt_docx_is_an_extraction_error() -> None:
    with pytest.raises(ExtractionError):
        await extraction.extract_text(b"not a zip", extraction.DOCX, "broken.docx")


@pytest.mark.asyncio
async def test_pdf_uses_text_layer(monkeypatch) -> None:
    monkeypatch.setattr(extraction, "_pdf_text_layer", lambda data: "Page one text")
    text = await extraction.extract_text(b"%PDF-1.7", extraction.PDF, "a.pdf")
    assert text == "Page one text"


@pytest.mark.asyncio
async def test_scanned_pdf_without_ocr_fails(monkeypatch) -> None:
    monkeypatch.setattr(extraction, "_pdf_text_layer", lambda data: "")
    with pytest.raises(ExtractionError):
        await extraction.extract_text(b"%PDF-1.7", extraction.PDF, "scan.pdf")


@pytest.mark.asyncio
async def test_scanned_pdf_falls_back_to_ocr(monkeypatch) -> None:
    monkeypatch.setenv("FF_USE_OCR", "true")
    get_flags.cache_clear()

    async def fake_ocr(data: bytes) -> str:
        return "Recognised contract text from the scan"

    monkeypatch.setattr(extraction, "_pdf_text_layer", lambda data: "")
    monkeypatch.setattr(extraction, "_ocr_extract", fake_ocr)

    text = await extraction.extract_text(b"%PDF-1.7", extraction.PDF, "scan.pdf")
    assert text == "Recognised contract text from the scan"
