"""Document text extraction by file extension.

  .pdf                                  → pypdf, page text joined by blank lines
  .html / .htm                          → BeautifulSoup clean-up + html2text
  .txt .md .markdown .rst .text .csv .log .json → UTF-8 text as-is
"""

from __future__ import annotations

from pathlib import Path

import html2text
import pypdf
from bs4 import BeautifulSoup

PDF_EXTS = {".pdf"}
HTML_EXTS = {".html", ".htm"}
TEXT_EXTS = {".txt", ".md", ".markdown", ".rst", ".text", ".csv", ".log", ".json"}
SUPPORTED_EXTS = PDF_EXTS | HTML_EXTS | TEXT_EXTS

_h2t = html2text.HTML2Text()
_h2t.ignore_links = True
_h2t.ignore_images = True
_h2t.body_width = 0


class UnsupportedDocumentError(ValueError):
    """Raised for file types no reader handles."""


def read_document(path: Path | str) -> str:
    """Return the plain text of the document at *path*.

    Raises:
        UnsupportedDocumentError: If the extension is not supported.
        FileNotFoundError: If *path* does not exist.
    """
    p = Path(path)
    ext = p.suffix.lower()
    if ext not in SUPPORTED_EXTS:
        raise UnsupportedDocumentError(
            f"Unsupported file type {ext!r} for '{p.name}'. "
            f"Supported: {', '.join(sorted(SUPPORTED_EXTS))}"
        )
    if not p.exists():
        raise FileNotFoundError(str(p))

    if ext in PDF_EXTS:
        return extract_pdf_text(p)
    raw = p.read_text(encoding="utf-8", errors="replace")
    if ext in HTML_EXTS:
        return html_to_text(raw)
    return raw


def extract_pdf_text(path: Path | str) -> str:
    """Extract all page text from the PDF at *path*; pages without text are skipped."""
    reader = pypdf.PdfReader(str(path))
    parts: list[str] = []
    for page in reader.pages:
        stripped = (page.extract_text() or "").strip()
        if stripped:
            parts.append(stripped)
    return "\n\n".join(parts)


def html_to_text(html: str) -> str:
    """Strip non-content tags, then convert the remaining HTML to plain text."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup.find_all(["script", "style", "nav", "footer", "head"]):
        tag.decompose()
    return _h2t.handle(str(soup)).strip()
