"""
Raw Text Extraction
===================

Implementations of the ``RawTextExtractor`` collaborator used by the daemon.
The document bytes come from the document service; the content type decides
how they become text:

- ``text/*``, JSON and XML are decoded as text, so JSON-path and XPath rules
  can run against the original structure;
- PDFs are read from their embedded text layer (PyMuPDF); a PDF without one
  is a scan and goes through OCR when it is enabled;
- Word documents (DOCX) are read with python-docx;
- images go through OCR when it is enabled;
- anything else is rejected with ``UnsupportedDocumentError``.
"""

from __future__ import annotations

import zipfile
from io import BytesIO
from typing import Protocol

import docx
import fitz  # PyMuPDF
import structlog
from docx.opc.exceptions import PackageNotFoundError

from common.exceptions import TextExtractionError, UnsupportedDocumentError
from common.models import DocumentRecord
from ocr.extractor import OcrTextExtractor

log = structlog.get_logger(__name__)

TEXT_CONTENT_TYPES = (
    "application/json",
    "application/xml",
    "application/xhtml+xml",
)

DOCX_CONTENT_TYPE = (
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
)


class ContentSource(Protocol):
    def download_content(self, doc_id: int) -> tuple[bytes, str]: ...


def _media_type(content_type: str) -> str:
    return content_type.split(";", 1)[0].strip().lower()


def _charset(content_type: str) -> str:
    for part in content_type.split(";")[1:]:
        name, _, value = part.partition("=")
        if name.strip().lower() == "charset" and value.strip():
            return value.strip().strip('"')
    return "utf-8"


def is_text_type(content_type: str) -> bool:
    media_type = _media_type(content_type)
    return (
        media_type.startswith("text/")
        or media_type in TEXT_CONTENT_TYPES
        or media_type.endswith("+json")
        or media_type.endswith("+xml")
    )


def is_pdf_type(content_type: str) -> bool:
    return _media_type(content_type) == "application/pdf"


def is_docx_type(content_type: str) -> bool:
    return _media_type(content_type) == DOCX_CONTENT_TYPE


def is_ocr_type(content_type: str) -> bool:
    return is_pdf_type(content_type) or _media_type(content_type).startswith("image/")


class PlainTextExtractor:
    """Decode textual content, honouring a declared charset."""

    def decode(self, content: bytes, content_type: str = "text/plain") -> str:
        try:
            text = content.decode(_charset(content_type), errors="replace")
        except LookupError:
            text = content.decode("utf-8", errors="replace")
        return text.lstrip("\ufeff").strip()


class PdfTextLayerExtractor:
    """
    Read the text a PDF already carries.

    Pages are joined with a blank line. A scanned PDF has no text layer and
    yields an empty string.
    """

    def extract(self, content: bytes) -> str:
        try:
            with fitz.open(stream=content, filetype="pdf") as pdf:
                pages = [page.get_text() for page in pdf]
        except (RuntimeError, ValueError) as e:
            raise TextExtractionError(f"Unable to read PDF: {e}") from e
        return "\n\n".join(text.strip() for text in pages if text.strip())


class DocxTextExtractor:
    """Paragraph text of a Word document, followed by its table rows."""

    def extract(self, content: bytes) -> str:
        try:
            document = docx.Document(BytesIO(content))
        except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError) as e:
            raise TextExtractionError(f"Unable to read DOCX: {e}") from e

        lines = [paragraph.text for paragraph in document.paragraphs]
        for table in document.tables:
            for row in table.rows:
                lines.append("\t".join(cell.text for cell in row.cells))
        return "\n".join(lines).strip()


class ContentTypeTextExtractor:
    """``RawTextExtractor`` backed by the document service download endpoint."""

    def __init__(
        self,
        source: ContentSource,
        ocr: OcrTextExtractor | None = None,
        plain: PlainTextExtractor | None = None,
        pdf_text: PdfTextLayerExtractor | None = None,
        docx_text: DocxTextExtractor | None = None,
    ):
        self.source = source
        self.ocr = ocr
        self.plain = plain or PlainTextExtractor()
        self.pdf_text = pdf_text or PdfTextLayerExtractor()
        self.docx_text = docx_text or DocxTextExtractor()

    def extract(self, document: DocumentRecord) -> str:
        content, content_type = self.source.download_content(document.id)
        if is_text_type(content_type):
            return self.plain.decode(content, content_type)
        if is_docx_type(content_type):
            return self.docx_text.extract(content)
        if is_pdf_type(content_type):
            text = self.pdf_text.extract(content)
            if text:
                return text
            log.info("PDF has no text layer; trying OCR", doc_id=document.id)
        if is_ocr_type(content_type):
            return self._ocr(document.id, content, content_type)
        raise UnsupportedDocumentError(f"Unsupported content type: {content_type}")

    def _ocr(self, doc_id: int, content: bytes, content_type: str) -> str:
        if self.ocr is None:
            raise UnsupportedDocumentError(
                f"OCR is disabled; cannot extract text from {content_type}"
            )
        return self.ocr.extract_bytes(doc_id, content, content_type)
