"""
PDF statement import adapter.
Works on text-based PDF exports; scanned (image-only) documents are detected, not OCR'd.
"""
import logging
from typing import List, Optional

from subtrack.integrations.base import StatementAdapter
from subtrack.schemas import RawTransaction
from subtrack.services.line_transaction_extractor import extract_transactions
from subtrack.services.pdf_text_extractor import PdfText, extract_text, is_scanned

logger = logging.getLogger(__name__)


class PdfStatementAdapter(StatementAdapter):
    """Adapter for importing transactions from a PDF statement or invoice."""

    source_name = "pdf"

    def __init__(self, pdf_content: bytes):
        self.pdf_content = pdf_content
        self._pdf_text: Optional[PdfText] = None

    @property
    def pdf_text(self) -> PdfText:
        """Extracted text; raises ExtractionError for unreadable files."""
        if self._pdf_text is None:
            self._pdf_text = extract_text(self.pdf_content)
        return self._pdf_text

    @property
    def is_scanned(self) -> bool:
        return is_scanned(self.pdf_text.text, self.pdf_text.page_count)

    def fetch_transactions(self) -> List[RawTransaction]:
        if self.is_scanned:
            logger.info(
                f"PDF looks scanned ({len(self.pdf_text.text)} chars on "
                f"{self.pdf_text.page_count} pages); skipping extraction"
            )
            return []
        return extract_transactions(self.pdf_text.text)
