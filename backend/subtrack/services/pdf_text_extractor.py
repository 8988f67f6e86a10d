"""PDF text extraction utilities."""
import logging
from dataclasses import dataclass

import fitz  # PyMuPDF

logger = logging.getLogger(__name__)

# Fewer extracted characters per page than this means image-only pages
SCANNED_CHARS_PER_PAGE_THRESHOLD = 100


class ExtractionError(Exception):
    """The PDF could not be read. ``reason`` classifies the cause for the caller."""

    MESSAGES = {
        "empty": "The uploaded file is empty.",
        "encrypted": "The PDF is password-protected. Please export an unprotected statement.",
        "invalid_format": "The file is not a valid PDF or is corrupted.",
        "unsupported": "The PDF uses features that cannot be read. Please try another export.",
    }

    def __init__(self, reason: str, detail: str = ""):
        self.reason = reason
        self.detail = detail
        super().__init__(self.MESSAGES.get(reason, self.MESSAGES["unsupported"]))


@dataclass
class PdfText:
    text: str
    page_count: int


def _classify_open_error(exc: Exception) -> str:
    message = str(exc).lower()
    if "password" in message or "encrypt" in message:
        return "encrypted"
    if isinstance(exc, (fitz.FileDataError, fitz.EmptyFileError)):
        return "invalid_format"
    if "format" in message or "broken" in message or "cannot open" in message or "no objects" in message:
        return "invalid_format"
    return "unsupported"


def extract_text(pdf_bytes: bytes) -> PdfText:
    """
    Extract the text of every page using PyMuPDF.

    Raises:
        ExtractionError: if the bytes cannot be opened or read as a PDF.
    """
    if not pdf_bytes:
        raise ExtractionError("empty")

    try:
        doc = fitz.open(stream=pdf_bytes, filetype="pdf")
    except Exception as e:
        reason = _classify_open_error(e)
        logger.warning(f"PDF open failed ({reason}): {e}")
        raise ExtractionError(reason, str(e)) from e

    try:
        if doc.needs_pass:
            raise ExtractionError("encrypted")
        if doc.page_count == 0:
            raise ExtractionError("invalid_format", "document has no pages")

        pages = []
        for page in doc:
            pages.append(page.get_text())
        page_count = doc.page_count
    except ExtractionError:
        raise
    except Exception as e:
        logger.warning(f"PDF text extraction failed: {e}")
        raise ExtractionError("unsupported", str(e)) from e
    finally:
        doc.close()

    text = "\n".join(pages)
    logger.info(f"Extracted {len(text)} characters from {page_count} PDF pages")
    return PdfText(text=text, page_count=page_count)


def is_scanned(text: str, page_count: int) -> bool:
    """
    Detect a scanned/image-based PDF by its extracted character density.

    This is an approximation: a sparse text-based PDF may be flagged and a
    scanned PDF with a text layer may not.
    """
    if page_count <= 0:
        return True
    return len(text or "") / page_count < SCANNED_CHARS_PER_PAGE_THRESHOLD
