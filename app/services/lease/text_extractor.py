"""
Sweetlease - Lease Text Extraction
Page-ordered text extraction from text-layer PDFs.

PyPDF2 validates the file (corruption, encryption); pdfplumber reads each
page's words in content-stream order.

Confidence: text-layer PDFs carry no recognition score, so each page with
text gets a synthetic estimate in [confidence_floor, confidence_ceiling]
(95-99 by default) and pages without a text layer get 0. Callers that plug
in a real OCR engine should pass its per-page scores through
``length_weighted_confidence`` instead of the plain mean.
"""

import asyncio
import io
import logging
import random
from typing import Callable, Optional

import pdfplumber
from PyPDF2 import PdfReader
from PyPDF2.errors import PdfReadError

from app.core.config import get_settings
from app.services.lease.errors import ExtractionError
from app.services.lease.models import ExtractedText, RawDocument

logger = logging.getLogger(__name__)

PAGE_SEPARATOR = "\n\n"
PDF_MAGIC = b"%PDF"

# Receives the page text, returns a confidence in [0, 100]
ConfidenceHeuristic = Callable[[str], float]


def synthetic_confidence(floor: float = 95.0, ceiling: float = 99.0) -> ConfidenceHeuristic:
    """Random high score for pages that have a text layer."""
    def estimate(page_text: str) -> float:
        return random.uniform(floor, ceiling)
    return estimate


def length_weighted_confidence(page_texts: list[str], page_confidences: list[float]) -> float:
    """
    Mean confidence weighted by page text length.

    Meant for real OCR output where a near-empty page should not count as
    much as a dense one. Returns 0 when there is no text at all.
    """
    weights = [len(text.strip()) for text in page_texts]
    total = sum(weights)
    if total == 0:
        return 0.0
    return sum(w * c for w, c in zip(weights, page_confidences)) / total


class LeaseTextExtractor:
    """
    Converts PDF bytes into ExtractedText.

    Image-only (scanned) PDFs fail with ExtractionError; no OCR fallback is
    attempted here.
    """

    def __init__(
        self,
        confidence: Optional[ConfidenceHeuristic] = None,
        max_bytes: Optional[int] = None,
    ):
        settings = get_settings()
        self._confidence = confidence or synthetic_confidence(
            settings.confidence_floor, settings.confidence_ceiling
        )
        self._max_bytes = max_bytes if max_bytes is not None else settings.max_upload_bytes

    async def extract(self, document: RawDocument) -> ExtractedText:
        """
        Extract page-ordered text from an uploaded PDF.

        Parsing runs in a worker thread so the event loop stays free.

        Raises:
            ExtractionError: not a PDF, corrupted, encrypted, too large,
                no pages, or only whitespace text
        """
        self._check_upload(document)
        result = await asyncio.to_thread(self._extract_sync, document.content, document.filename)
        logger.info(
            "Extracted %s: %d pages, %d chars, confidence %.1f",
            document.filename,
            result.page_count,
            len(result.full_text),
            result.overall_confidence,
        )
        return result

    def _check_upload(self, document: RawDocument) -> None:
        if document.size == 0:
            raise ExtractionError(f"{document.filename} is empty")
        if self._max_bytes and document.size > self._max_bytes:
            raise ExtractionError(
                f"{document.filename} is too large "
                f"({document.size} bytes, max {self._max_bytes})"
            )
        # Readers accept the header anywhere in the first kilobyte
        if PDF_MAGIC not in document.content[:1024]:
            raise ExtractionError(f"{document.filename} is not a PDF document")

    def _extract_sync(self, content: bytes, filename: str) -> ExtractedText:
        self._validate(content, filename)

        page_texts: list[str] = []
        try:
            with pdfplumber.open(io.BytesIO(content)) as pdf:
                for page in pdf.pages:
                    page_texts.append(self._page_text(page))
        except ExtractionError:
            raise
        except Exception as e:
            logger.warning("pdfplumber failed on %s: %s", filename, e)
            raise ExtractionError(f"Could not read {filename}: {e}") from e

        if not page_texts:
            raise ExtractionError(f"{filename} has no pages")

        full_text = PAGE_SEPARATOR.join(page_texts)
        if not full_text.strip():
            raise ExtractionError(
                "Could not extract any text from the PDF. "
                "The file might be corrupted or contain only images."
            )

        confidences = [
            self._clamp(self._confidence(text)) if text.strip() else 0.0
            for text in page_texts
        ]
        return ExtractedText.from_pages(full_text, confidences)

    @staticmethod
    def _validate(content: bytes, filename: str) -> None:
        try:
            reader = PdfReader(io.BytesIO(content))
            if reader.is_encrypted:
                raise ExtractionError(f"{filename} is password protected")
            page_count = len(reader.pages)
        except PdfReadError as e:
            raise ExtractionError(f"{filename} is corrupted or not a valid PDF: {e}") from e
        except ExtractionError:
            raise
        except Exception as e:
            raise ExtractionError(f"Failed to open {filename}: {e}") from e

        if page_count == 0:
            raise ExtractionError(f"{filename} has no pages")

    @staticmethod
    def _page_text(page) -> str:
        """Join the page's words with single spaces in content-stream order."""
        words = page.extract_words(use_text_flow=True, keep_blank_chars=False)
        return " ".join(word["text"] for word in words if word["text"].strip())

    @staticmethod
    def _clamp(value: float) -> float:
        return max(0.0, min(100.0, float(value)))


# Singleton instance
_extractor: Optional[LeaseTextExtractor] = None


def get_text_extractor() -> LeaseTextExtractor:
    """Get or create the text extractor instance."""
    global _extractor
    if _extractor is None:
        _extractor = LeaseTextExtractor()
    return _extractor
