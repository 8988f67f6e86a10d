"""
Test PDF text extraction, scanned-document detection and the PDF adapter
using real documents generated with PyMuPDF.
"""
import sys
import os

import fitz  # PyMuPDF
import pytest

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from subtrack.integrations.pdf_statement import PdfStatementAdapter
from subtrack.services.pdf_text_extractor import ExtractionError, extract_text, is_scanned

STATEMENT_LINES = [
    "Kontoauszug Girokonto Musterbank",
    "15.01.2025 NETFLIX.COM 12,99 EUR",
    "14.02.2025 NETFLIX.COM 12,99 EUR",
    "16.03.2025 NETFLIX.COM 12,99 EUR",
    "01.01.2025 Spotify AB 9,99 EUR",
    "01.02.2025 Spotify AB 9,99 EUR",
]


def build_pdf(lines, **save_options) -> bytes:
    """Render each line of text onto a single PDF page."""
    doc = fitz.open()
    page = doc.new_page()
    y = 72
    for line in lines:
        page.insert_text((50, y), line, fontsize=11)
        y += 18
    data = doc.tobytes(**save_options)
    doc.close()
    return data


def test_extract_text_from_text_pdf():
    result = extract_text(build_pdf(STATEMENT_LINES))

    assert result.page_count == 1
    assert "NETFLIX.COM" in result.text
    assert "Spotify AB" in result.text
    assert not is_scanned(result.text, result.page_count)
    print("✓ Text extracted from text-based PDF")


def test_blank_pdf_is_scanned():
    result = extract_text(build_pdf([]))
    assert result.page_count == 1
    assert is_scanned(result.text, result.page_count)
    print("✓ Image-only (blank) PDF flagged as scanned")


def test_is_scanned_density():
    assert is_scanned("", 0)
    assert is_scanned("x" * 150, 2)
    assert not is_scanned("x" * 250, 2)
    print("✓ Scanned detection uses characters per page")


def test_empty_file_rejected():
    with pytest.raises(ExtractionError) as exc_info:
        extract_text(b"")
    assert exc_info.value.reason == "empty"
    print("✓ Empty upload rejected")


def test_corrupt_file_rejected():
    with pytest.raises(ExtractionError) as exc_info:
        extract_text(b"this is definitely not a pdf document")
    assert exc_info.value.reason == "invalid_format"
    print("✓ Corrupt upload rejected")


def test_encrypted_pdf_rejected():
    pdf_bytes = build_pdf(
        STATEMENT_LINES,
        encryption=fitz.PDF_ENCRYPT_AES_256,
        owner_pw="owner-secret",
        user_pw="user-secret",
    )
    with pytest.raises(ExtractionError) as exc_info:
        extract_text(pdf_bytes)
    assert exc_info.value.reason == "encrypted"
    assert "password" in str(exc_info.value)
    print("✓ Password-protected PDF rejected")


def test_pdf_adapter_extracts_transactions():
    adapter = PdfStatementAdapter(build_pdf(STATEMENT_LINES))

    assert not adapter.is_scanned
    transactions = adapter.fetch_transactions()

    assert len(transactions) == 5
    assert transactions[0].date == "2025-01-15"
    assert transactions[0].description == "NETFLIX.COM"
    assert all(t.source.kind == "pdf_line" for t in transactions)
    print("✓ PDF adapter extracts statement lines")


def test_pdf_adapter_skips_scanned_documents():
    adapter = PdfStatementAdapter(build_pdf([]))
    assert adapter.is_scanned
    assert adapter.fetch_transactions() == []
    print("✓ PDF adapter returns nothing for scanned documents")


if __name__ == "__main__":
    test_extract_text_from_text_pdf()
    test_blank_pdf_is_scanned()
    test_is_scanned_density()
    test_empty_file_rejected()
    test_corrupt_file_rejected()
    test_encrypted_pdf_rejected()
    test_pdf_adapter_extracts_transactions()
    test_pdf_adapter_skips_scanned_documents()
    print("\nAll PDF import tests passed!")
