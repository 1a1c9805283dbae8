import pytest
from fastapi.testclient import TestClient

from prescreen_api import main
from prescreen_api.services.document_service import DocumentService


class FakeGeminiService:
    """Records calls instead of talking to Gemini"""

    def __init__(self, criteria=None, script="# Role and Personality\nYou are a coordinator.",
                 transcription="", configured=True):
        self.criteria = criteria if criteria is not None else {
            "inclusion": ["Age 18 or older"],
            "exclusion": ["Pregnant or breastfeeding"],
        }
        self.script = script
        self.transcription = transcription
        self.is_configured = configured
        self.criteria_calls = []
        self.script_calls = []
        self.transcribe_calls = []

    async def extract_criteria(self, document_text):
        self.criteria_calls.append(document_text)
        if isinstance(self.criteria, Exception):
            raise self.criteria
        return self.criteria

    async def generate_script(self, inclusion, exclusion, study_name):
        self.script_calls.append((inclusion, exclusion, study_name))
        if isinstance(self.script, Exception):
            raise self.script
        return self.script

    async def transcribe_pages(self, page_images):
        self.transcribe_calls.append(page_images)
        return self.transcription


@pytest.fixture
def fake_gemini():
    return FakeGeminiService()


@pytest.fixture
def document_service(fake_gemini):
    return DocumentService(fake_gemini)


@pytest.fixture
def fake_pdf(document_service, monkeypatch):
    """Replace MuPDF/poppler access with an in-memory page table"""

    class FakePdf:
        def __init__(self):
            self.pages = {}
            self.read_pages = []
            self.rendered_pages = []
            self.failing_pages = set()

        def set_pages(self, texts):
            self.pages = {i + 1: text for i, text in enumerate(texts)}

    pdf = FakePdf()

    def count_pdf_pages(data):
        return len(pdf.pages)

    def read_page_text(data, page_number):
        pdf.read_pages.append(page_number)
        if page_number in pdf.failing_pages:
            raise RuntimeError(f"broken page {page_number}")
        return pdf.pages[page_number]

    def render_pages(data, page_numbers):
        pdf.rendered_pages = list(page_numbers)
        return [f"image-{n}".encode() for n in page_numbers]

    monkeypatch.setattr(document_service, "count_pdf_pages", count_pdf_pages)
    monkeypatch.setattr(document_service, "read_page_text", read_page_text)
    monkeypatch.setattr(document_service, "render_pages", render_pages)
    return pdf


@pytest.fixture
def client(fake_gemini, document_service, monkeypatch):
    monkeypatch.setattr(main, "gemini_service", fake_gemini)
    monkeypatch.setattr(main, "document_service", document_service)
    return TestClient(main.app)
