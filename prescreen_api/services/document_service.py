"""
Document text extraction - plain text, DOCX and PDF (text layer with a
Gemini vision fallback for scanned protocols)
"""
import io
import re
import asyncio
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, List, Tuple
import fitz  # PyMuPDF
import pdf2image
from docx import Document
from PIL import Image
import logging

logger = logging.getLogger(__name__)

INCLUSION_KEYWORDS = ("inclusion criteria", "eligibility criteria")
EXCLUSION_KEYWORDS = ("exclusion criteria",)

PDF_CONTENT_TYPES = {"application/pdf"}
DOCX_CONTENT_TYPES = {"application/vnd.openxmlformats-officedocument.wordprocessingml.document"}
TEXT_CONTENT_TYPES = {"text/plain"}


class DocumentError(Exception):
    """Raised when an upload cannot be turned into usable text (HTTP 400)"""


class PDFProcessingError(Exception):
    """Raised when the PDF pipeline itself fails (HTTP 500)"""


def has_both_sections(text: str) -> bool:
    lowered = text.lower()
    found_inclusion = any(k in lowered for k in INCLUSION_KEYWORDS)
    found_exclusion = any(k in lowered for k in EXCLUSION_KEYWORDS)
    return found_inclusion and found_exclusion


def mentions_criteria(text: str) -> bool:
    lowered = text.lower()
    return any(k in lowered for k in INCLUSION_KEYWORDS + EXCLUSION_KEYWORDS)


def normalize_whitespace(text: str) -> str:
    return re.sub(r"\s+", " ", text).strip()


class DocumentService:
    def __init__(self, gemini_service, batch_size=10, max_pages=50, overscan_batches=2,
                 min_text_layer_chars=500, min_document_chars=100,
                 vision_max_pages=8, vision_default_pages=5, vision_dpi=150):
        self.gemini_service = gemini_service
        self.batch_size = batch_size
        self.max_pages = max_pages
        self.overscan_batches = overscan_batches
        self.min_text_layer_chars = min_text_layer_chars
        self.min_document_chars = min_document_chars
        self.vision_max_pages = vision_max_pages
        self.vision_default_pages = vision_default_pages
        self.vision_dpi = vision_dpi

    def resolve_media_type(self, filename: str, content_type: str) -> str:
        """Map an upload to 'pdf', 'docx' or 'text' by content type, then extension"""
        name = (filename or "").lower()
        content_type = (content_type or "").split(";")[0].strip().lower()

        if content_type in PDF_CONTENT_TYPES or name.endswith('.pdf'):
            return 'pdf'
        if content_type in DOCX_CONTENT_TYPES or name.endswith('.docx'):
            return 'docx'
        if content_type in TEXT_CONTENT_TYPES or name.endswith('.txt'):
            return 'text'
        raise DocumentError("Unsupported file type. Please upload PDF, DOCX, or TXT files.")

    async def extract_text(self, data: bytes, filename: str, content_type: str) -> str:
        """
        Produce the document's text, enforcing the minimum viable length

        Args:
            data: Raw uploaded bytes
            filename: Original file name
            content_type: Declared media type

        Returns:
            Extracted text, never shorter than min_document_chars
        """
        media_type = self.resolve_media_type(filename, content_type)
        logger.info(f"Extracting text from {filename} as {media_type}")

        if media_type == 'pdf':
            text = await self.extract_pdf_text(data)
        elif media_type == 'docx':
            text = await asyncio.to_thread(self.extract_docx_text, data)
        else:
            text = data.decode('utf-8', errors='replace')

        if len(text.strip()) < self.min_document_chars:
            if media_type == 'pdf':
                raise DocumentError(
                    "Could not extract sufficient text from PDF. The document may be empty, "
                    "corrupted, or contain only images."
                )
            raise DocumentError("Could not extract sufficient text from the document. The document may be empty.")

        return text

    def extract_docx_text(self, data: bytes) -> str:
        """Raw text of paragraphs and table cells"""
        doc = Document(io.BytesIO(data))
        lines = [p.text for p in doc.paragraphs]
        for table in doc.tables:
            for row in table.rows:
                lines.append(" | ".join(cell.text for cell in row.cells))
        return "\n".join(lines)

    # --- PDF text layer ---

    def count_pdf_pages(self, data: bytes) -> int:
        with fitz.open(stream=data, filetype="pdf") as doc:
            return doc.page_count

    def read_page_text(self, data: bytes, page_number: int) -> str:
        """Text layer of one 1-based page; opens its own document so threads never share one"""
        with fitz.open(stream=data, filetype="pdf") as doc:
            return doc.load_page(page_number - 1).get_text()

    def read_batch(self, data: bytes, page_numbers: List[int]) -> Dict[int, str]:
        """Read a batch of pages in parallel, substituting '' for unreadable pages"""
        # PyMuPDF does not document multithreaded use as supported, even across
        # separate Document objects. Every task opens its own document and no
        # fitz object crosses threads; set batch_size=1 to read sequentially.
        results = {}
        with ThreadPoolExecutor(max_workers=len(page_numbers)) as executor:
            future_to_page = {
                executor.submit(self.read_page_text, data, page_number): page_number
                for page_number in page_numbers
            }

            for future in as_completed(future_to_page):
                page_number = future_to_page[future]
                try:
                    results[page_number] = future.result()
                except Exception as e:
                    logger.warning(f"Could not read text from page {page_number}: {str(e)}")
                    results[page_number] = ""

        return results

    def extract_pdf_text_layer(self, data: bytes) -> Tuple[Dict[int, str], int]:
        """
        Scan the text layer batch by batch until both criteria headings are seen

        Once both headings appear in the cumulative text, overscan_batches more
        batches are read and scanning stops. Otherwise scanning continues up to
        max_pages.

        Returns:
            (page number -> text, total page count)
        """
        page_count = self.count_pdf_pages(data)
        scan_limit = min(page_count, self.max_pages)
        pages = {}

        logger.info(f"PDF has {page_count} pages, scanning up to {scan_limit} in batches of {self.batch_size}")

        start = 1
        while start <= scan_limit:
            end = min(start + self.batch_size - 1, scan_limit)
            logger.info(f"Reading pages {start}-{end}")
            pages.update(self.read_batch(data, list(range(start, end + 1))))

            cumulative = " ".join(pages[n] for n in sorted(pages))
            if has_both_sections(cumulative):
                logger.info(f"Found both criteria sections by page {end}, reading {self.overscan_batches} more batch(es)")
                for _ in range(self.overscan_batches):
                    start = end + 1
                    if start > page_count:
                        break
                    end = min(start + self.batch_size - 1, page_count)
                    logger.info(f"Reading pages {start}-{end} (overscan)")
                    pages.update(self.read_batch(data, list(range(start, end + 1))))
                break

            start = end + 1

        return pages, page_count

    # --- Vision fallback ---

    def select_vision_pages(self, page_texts: Dict[int, str], page_count: int) -> List[int]:
        """Keyword hits plus their neighbours, capped; first pages when nothing matches"""
        hits = [n for n in sorted(page_texts) if mentions_criteria(page_texts[n])]

        if not hits:
            return list(range(1, min(self.vision_default_pages, page_count) + 1))

        candidates = set()
        for page_number in hits:
            for neighbour in (page_number - 1, page_number, page_number + 1):
                if 1 <= neighbour <= page_count:
                    candidates.add(neighbour)

        return sorted(candidates)[:self.vision_max_pages]

    def resize_image(self, image: Image.Image, max_size: int = 1920) -> Image.Image:
        """Resize image while preserving aspect ratio"""
        width, height = image.size
        if max(width, height) <= max_size:
            return image

        aspect_ratio = width / height
        if width > height:
            new_width = max_size
            new_height = int(max_size / aspect_ratio)
        else:
            new_height = max_size
            new_width = int(max_size * aspect_ratio)

        return image.resize((new_width, new_height), Image.LANCZOS)

    def convert_to_jpeg_bytes(self, image: Image.Image) -> bytes:
        img_byte_arr = io.BytesIO()
        if image.mode in ("RGBA", "P"):
            image = image.convert("RGB")
        image.save(img_byte_arr, format='JPEG', quality=90)
        return img_byte_arr.getvalue()

    def render_pages(self, data: bytes, page_numbers: List[int]) -> List[bytes]:
        """Rasterize the given 1-based pages to JPEG bytes"""
        images = []
        for page_number in page_numbers:
            rendered = pdf2image.convert_from_bytes(
                data, dpi=self.vision_dpi, first_page=page_number, last_page=page_number
            )
            for image in rendered:
                images.append(self.convert_to_jpeg_bytes(self.resize_image(image)))

        logger.info(f"Rendered {len(images)} page image(s) for vision transcription")
        return images

    async def extract_pdf_text(self, data: bytes) -> str:
        """Text layer first; Gemini vision over likely criteria pages when that is too thin"""
        try:
            pages, page_count = await asyncio.to_thread(self.extract_pdf_text_layer, data)
            text = normalize_whitespace("\n\n".join(pages[n] for n in sorted(pages)))
            logger.info(f"Text extraction: {len(text)} characters from {len(pages)} pages")

            if len(text) >= self.min_text_layer_chars:
                logger.info("Using directly extracted text")
                return text

            page_numbers = self.select_vision_pages(pages, page_count)
            logger.info(f"Text extraction insufficient, using Gemini vision on pages {page_numbers}")
            if not page_numbers:
                return text

            images = await asyncio.to_thread(self.render_pages, data, page_numbers)
            return await self.gemini_service.transcribe_pages(images)

        except DocumentError:
            raise
        except Exception as e:
            logger.error(f"PDF processing error: {str(e)}")
            raise PDFProcessingError(f"Failed to process PDF: {str(e)}") from e
