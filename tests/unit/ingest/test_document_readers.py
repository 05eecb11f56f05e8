"""Tests for document text readers."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from purpleiq.ingest import UnsupportedDocumentError, read_document
from purpleiq.ingest.readers import extract_pdf_text, html_to_text


def test_reads_markdown_as_text(tmp_path: Path) -> None:
    doc = tmp_path / "prd.md"
    doc.write_text("# Login\nUsers sign in.", encoding="utf-8")
    assert read_document(doc) == "# Login\nUsers sign in."


def test_unsupported_extension_raises(tmp_path: Path) -> None:
    doc = tmp_path / "archive.zip"
    doc.write_bytes(b"PK")
    with pytest.raises(UnsupportedDocumentError, match=".zip"):
        read_document(doc)


def test_missing_file_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        read_document(tmp_path / "missing.txt")


def test_html_strips_scripts_and_navigation() -> None:
    html = (
        "<html><head><title>t</title></head><body>"
        "<nav>Menu</nav><script>alert(1)</script>"
        "<h1>Checkout</h1><p>Payment must succeed.</p>"
        "<footer>Copyright</footer></body></html>"
    )
    text = html_to_text(html)
    assert "Checkout" in text
    assert "Payment must succeed." in text
    assert "alert" not in text
    assert "Menu" not in text
    assert "Copyright" not in text


def test_read_document_dispatches_html(tmp_path: Path) -> None:
    doc = tmp_path / "page.html"
    doc.write_text("<p>Hello <b>QA</b></p>", encoding="utf-8")
    assert "Hello" in read_document(doc)


def test_pdf_pages_joined_and_blank_pages_skipped() -> None:
    pages = [MagicMock(), MagicMock(), MagicMock()]
    pages[0].extract_text.return_value = "Page one"
    pages[1].extract_text.return_value = "   "
    pages[2].extract_text.return_value = "Page three"
    reader = MagicMock()
    reader.pages = pages

    with patch("purpleiq.ingest.readers.pypdf.PdfReader", return_value=reader):
        assert extract_pdf_text("design.pdf") == "Page one\n\nPage three"
