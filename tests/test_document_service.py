import io

import pytest
from docx import Document

from prescreen_api.services.document_service import (
    DocumentService,
    DocumentError,
    PDFProcessingError,
    has_both_sections,
    normalize_whitespace,
)

FILLER = "The study drug is administered orally once daily. " * 20


def test_resolve_media_type_prefers_content_type(document_service):
    assert document_service.resolve_media_type("protocol.bin", "application/pdf") == "pdf"
    assert document_service.resolve_media_type(
        "protocol",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ) == "docx"
    assert document_service.resolve_media_type("notes", "text/plain; charset=utf-8") == "text"


def test_resolve_media_type_falls_back_to_extension(document_service):
    assert document_service.resolve_media_type("Protocol.PDF", "application/octet-stream") == "pdf"
    assert document_service.resolve_media_type("protocol.docx", None) == "docx"
    assert document_service.resolve_media_type("protocol.txt", "") == "text"


def test_resolve_media_type_rejects_unknown(document_service):
    with pytest.raises(DocumentError, match="Unsupported file type"):
        document_service.resolve_media_type("scan.png", "image/png")


def test_has_both_sections():
    assert has_both_sections("... ELIGIBILITY CRITERIA ... Exclusion Criteria ...")
    assert has_both_sections("inclusion criteria: x. exclusion criteria: y.")
    assert not has_both_sections("Inclusion Criteria only")
    assert not has_both_sections("Exclusion Criteria only")


def test_normalize_whitespace():
    assert normalize_whitespace("  a\n\n b\t c  ") == "a b c"


@pytest.mark.asyncio
async def test_plain_text_is_read_verbatim(document_service):
    text = "Inclusion Criteria:\n- Adults\n\nExclusion Criteria:\n- Pregnancy\n" + FILLER
    result = await document_service.extract_text(text.encode("utf-8"), "protocol.txt", "text/plain")
    assert result == text


@pytest.mark.asyncio
async def test_short_text_is_rejected(document_service):
    with pytest.raises(DocumentError, match="sufficient text"):
        await document_service.extract_text(b"Inclusion Criteria: adults", "protocol.txt", "text/plain")


@pytest.mark.asyncio
async def test_docx_paragraphs_and_tables(document_service):
    doc = Document()
    doc.add_paragraph("Inclusion Criteria")
    doc.add_paragraph("Adults aged 18 to 75 with confirmed type 2 diabetes mellitus.")
    doc.add_paragraph("Exclusion Criteria")
    doc.add_paragraph("Prior treatment with insulin within the last 6 months.")
    table = doc.add_table(rows=1, cols=2)
    table.rows[0].cells[0].text = "HbA1c"
    table.rows[0].cells[1].text = "7.0% to 10.5%"
    buffer = io.BytesIO()
    doc.save(buffer)

    text = await document_service.extract_text(buffer.getvalue(), "protocol.docx", None)

    assert "Adults aged 18 to 75" in text
    assert "Prior treatment with insulin" in text
    assert "HbA1c | 7.0% to 10.5%" in text


@pytest.mark.asyncio
async def test_pdf_with_text_layer_skips_vision(document_service, fake_pdf, fake_gemini):
    fake_pdf.set_pages([
        "Protocol synopsis " + FILLER,
        "Inclusion Criteria: adults. Exclusion Criteria: pregnancy.",
    ])

    text = await document_service.extract_text(b"%PDF", "protocol.pdf", "application/pdf")

    assert text.startswith("Protocol synopsis")
    assert "Exclusion Criteria: pregnancy." in text
    assert "\n" not in text
    assert fake_gemini.transcribe_calls == []


@pytest.mark.asyncio
async def test_thin_text_layer_triggers_vision(document_service, fake_pdf, fake_gemini):
    fake_pdf.set_pages(["Cover page", "Inclusion Criteria", "", "Exclusion Criteria", ""])
    fake_gemini.transcription = "Inclusion Criteria: adults. Exclusion Criteria: pregnancy. " + FILLER

    text = await document_service.extract_text(b"%PDF", "protocol.pdf", "application/pdf")

    assert text == fake_gemini.transcription
    assert len(fake_gemini.transcribe_calls) == 1
    assert fake_pdf.rendered_pages == [1, 2, 3, 4, 5]


@pytest.mark.asyncio
async def test_no_text_and_no_hits_sends_first_five_pages(document_service, fake_pdf, fake_gemini):
    fake_pdf.set_pages([""] * 12)
    fake_gemini.transcription = "Inclusion Criteria: adults. " + FILLER

    await document_service.extract_text(b"%PDF", "scan.pdf", "application/pdf")

    assert fake_pdf.rendered_pages == [1, 2, 3, 4, 5]
    assert fake_gemini.transcribe_calls[0] == [f"image-{n}".encode() for n in range(1, 6)]


@pytest.mark.asyncio
async def test_vision_fails_when_transcription_is_too_short(document_service, fake_pdf, fake_gemini):
    fake_pdf.set_pages([""] * 3)
    fake_gemini.transcription = "blank"

    with pytest.raises(DocumentError, match="Could not extract sufficient text from PDF"):
        await document_service.extract_text(b"%PDF", "scan.pdf", "application/pdf")


@pytest.mark.asyncio
async def test_empty_pdf_never_calls_vision(document_service, fake_pdf, fake_gemini):
    fake_pdf.set_pages([])

    with pytest.raises(DocumentError):
        await document_service.extract_text(b"%PDF", "empty.pdf", "application/pdf")
    assert fake_gemini.transcribe_calls == []


def test_vision_pages_expand_hits_to_neighbours(document_service):
    page_texts = {n: "" for n in range(1, 21)}
    page_texts[4] = "5. Inclusion Criteria"
    page_texts[10] = "6. Exclusion Criteria"

    assert document_service.select_vision_pages(page_texts, 20) == [3, 4, 5, 9, 10, 11]


def test_vision_pages_clip_to_document_and_cap(document_service):
    page_texts = {n: "" for n in range(1, 31)}
    for n in (1, 8, 15, 30):
        page_texts[n] = "eligibility criteria"

    # 1 -> 1,2 ; 8 -> 7,8,9 ; 15 -> 14,15,16 ; 30 -> 29,30
    assert document_service.select_vision_pages(page_texts, 30) == [1, 2, 7, 8, 9, 14, 15, 16]


def test_vision_pages_default_to_short_document_length(document_service):
    assert document_service.select_vision_pages({1: "", 2: ""}, 2) == [1, 2]


def test_scan_stops_after_overscan_batches(document_service, fake_pdf):
    texts = ["body text"] * 60
    texts[3] = "Inclusion Criteria"
    texts[7] = "Exclusion Criteria"
    fake_pdf.set_pages(texts)

    pages, page_count = document_service.extract_pdf_text_layer(b"%PDF")

    assert page_count == 60
    # first batch finds both headings, then two more batches
    assert sorted(pages) == list(range(1, 31))


def test_keywords_split_across_batches_use_cumulative_text(document_service, fake_pdf):
    texts = ["body text"] * 60
    texts[5] = "Inclusion Criteria"
    texts[14] = "Exclusion Criteria"
    fake_pdf.set_pages(texts)

    pages, _ = document_service.extract_pdf_text_layer(b"%PDF")

    assert sorted(pages) == list(range(1, 41))


def test_overscan_is_bounded_by_page_count(document_service, fake_pdf):
    texts = ["body text"] * 14
    texts[0] = "Eligibility Criteria and Exclusion Criteria"
    fake_pdf.set_pages(texts)

    pages, _ = document_service.extract_pdf_text_layer(b"%PDF")

    assert sorted(pages) == list(range(1, 15))


def test_scan_without_keywords_stops_at_page_cap(document_service, fake_pdf):
    fake_pdf.set_pages(["body text"] * 80)

    pages, page_count = document_service.extract_pdf_text_layer(b"%PDF")

    assert page_count == 80
    assert sorted(pages) == list(range(1, 51))
    assert max(fake_pdf.read_pages) == 50


def test_unreadable_page_becomes_empty_string(document_service, fake_pdf):
    fake_pdf.set_pages([f"page {n}" for n in range(1, 13)])
    fake_pdf.failing_pages = {3}

    pages, _ = document_service.extract_pdf_text_layer(b"%PDF")

    assert pages[3] == ""
    assert pages[4] == "page 4"
    assert len(pages) == 12


@pytest.mark.asyncio
async def test_unexpected_pdf_failure_is_wrapped(document_service, monkeypatch):
    def broken(data):
        raise RuntimeError("cannot open document")

    monkeypatch.setattr(document_service, "count_pdf_pages", broken)

    with pytest.raises(PDFProcessingError, match="Failed to process PDF: cannot open document"):
        await document_service.extract_text(b"not a pdf", "protocol.pdf", "application/pdf")


def test_resize_image_preserves_aspect_ratio(document_service):
    from PIL import Image

    image = Image.new("RGB", (3840, 1920))
    resized = document_service.resize_image(image)
    assert resized.size == (1920, 960)

    small = Image.new("RGB", (800, 600))
    assert document_service.resize_image(small) is small


def test_convert_to_jpeg_bytes_handles_rgba(document_service):
    from PIL import Image

    data = document_service.convert_to_jpeg_bytes(Image.new("RGBA", (10, 10)))
    assert data[:2] == b"\xff\xd8"


def test_batch_size_one_reads_pages_one_at_a_time(fake_gemini, monkeypatch):
    service = DocumentService(fake_gemini, batch_size=1)
    texts = ["Inclusion Criteria and Exclusion Criteria"] + ["body text"] * 9
    reads = []

    def read_page_text(data, page_number):
        reads.append(page_number)
        return texts[page_number - 1]

    monkeypatch.setattr(service, "count_pdf_pages", lambda data: len(texts))
    monkeypatch.setattr(service, "read_page_text", read_page_text)

    pages, _ = service.extract_pdf_text_layer(b"%PDF")

    # headings on page 1, then two single-page overscan batches
    assert reads == [1, 2, 3]
    assert sorted(pages) == [1, 2, 3]


@pytest.mark.asyncio
async def test_docx_is_read_off_the_event_loop(document_service, monkeypatch):
    import threading

    loop_thread = threading.get_ident()
    seen = {}

    def extract_docx_text(data):
        seen["thread"] = threading.get_ident()
        return "Inclusion Criteria: adults. Exclusion Criteria: pregnancy. " * 3

    monkeypatch.setattr(document_service, "extract_docx_text", extract_docx_text)

    await document_service.extract_text(b"PK", "protocol.docx", None)

    assert seen["thread"] != loop_thread
