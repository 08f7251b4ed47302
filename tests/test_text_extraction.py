from io import BytesIO
from unittest.mock import MagicMock

import docx
import fitz
import pytest

from common.exceptions import TextExtractionError, UnsupportedDocumentError
from common.models import DocumentRecord
from pipeline.text_extraction import (
    DOCX_CONTENT_TYPE,
    ContentTypeTextExtractor,
    DocxTextExtractor,
    PdfTextLayerExtractor,
    PlainTextExtractor,
    is_ocr_type,
    is_text_type,
)


def _pdf_bytes(*page_texts):
    """A PDF with one page per entry; an empty entry makes a page without text."""
    pdf = fitz.open()
    for text in page_texts:
        page = pdf.new_page()
        if text:
            page.insert_text((72, 72), text)
    content = pdf.tobytes()
    pdf.close()
    return content


def _docx_bytes(*paragraphs, table=None):
    document = docx.Document()
    for paragraph in paragraphs:
        document.add_paragraph(paragraph)
    if table:
        grid = document.add_table(rows=len(table), cols=len(table[0]))
        for r, row in enumerate(table):
            for c, value in enumerate(row):
                grid.cell(r, c).text = value
    buffer = BytesIO()
    document.save(buffer)
    return buffer.getvalue()


@pytest.mark.parametrize(
    "content_type, text, ocr",
    [
        ("text/plain", True, False),
        ("text/csv; charset=utf-8", True, False),
        ("application/json", True, False),
        ("application/ld+json", True, False),
        ("application/xml", True, False),
        ("image/svg+xml", True, True),
        ("application/pdf", False, True),
        ("image/png", False, True),
        ("application/zip", False, False),
    ],
)
def test_content_type_detection(content_type, text, ocr):
    assert is_text_type(content_type) is text
    assert is_ocr_type(content_type) is ocr


def test_plain_text_decoding():
    plain = PlainTextExtractor()

    assert plain.decode("\ufeff  Invoice #1\n".encode("utf-8")) == "Invoice #1"
    assert plain.decode("Café".encode("latin-1"), "text/plain; charset=ISO-8859-1") == "Café"
    assert plain.decode(b"ok", "text/plain; charset=no-such-codec") == "ok"
    assert plain.decode(b"bad \xff byte") == "bad \ufffd byte"


@pytest.fixture
def source():
    return MagicMock()


def test_text_documents_are_decoded(source):
    source.download_content.return_value = (b'{"total": 5}', "application/json")
    ocr = MagicMock()

    text = ContentTypeTextExtractor(source, ocr=ocr).extract(DocumentRecord(id=3))

    assert text == '{"total": 5}'
    source.download_content.assert_called_once_with(3)
    ocr.extract_bytes.assert_not_called()


def test_pdf_text_layer_is_read_without_ocr(source):
    source.download_content.return_value = (
        _pdf_bytes("Invoice #4521", "Total: 12.00"),
        "application/pdf",
    )

    text = ContentTypeTextExtractor(source).extract(DocumentRecord(id=4))

    assert text == "Invoice #4521\n\nTotal: 12.00"


def test_pdf_text_layer_skips_empty_pages():
    assert PdfTextLayerExtractor().extract(_pdf_bytes("", "Receipt")) == "Receipt"


def test_corrupt_pdf_raises_text_extraction_error():
    with pytest.raises(TextExtractionError, match="Unable to read PDF"):
        PdfTextLayerExtractor().extract(b"this is not a pdf")


def test_scanned_pdf_falls_back_to_ocr(source):
    content = _pdf_bytes("")
    source.download_content.return_value = (content, "application/pdf")
    ocr = MagicMock()
    ocr.extract_bytes.return_value = "scanned text"

    text = ContentTypeTextExtractor(source, ocr=ocr).extract(DocumentRecord(id=4))

    assert text == "scanned text"
    ocr.extract_bytes.assert_called_once_with(4, content, "application/pdf")


def test_scanned_pdf_without_ocr_is_unsupported(source):
    source.download_content.return_value = (_pdf_bytes(""), "application/pdf")

    with pytest.raises(UnsupportedDocumentError, match="OCR is disabled"):
        ContentTypeTextExtractor(source).extract(DocumentRecord(id=4))


def test_images_go_through_ocr(source):
    source.download_content.return_value = (b"\x89PNG", "image/png")
    ocr = MagicMock()
    ocr.extract_bytes.return_value = "photo text"

    text = ContentTypeTextExtractor(source, ocr=ocr).extract(DocumentRecord(id=6))

    assert text == "photo text"
    ocr.extract_bytes.assert_called_once_with(6, b"\x89PNG", "image/png")


def test_images_without_ocr_are_unsupported(source):
    source.download_content.return_value = (b"\x89PNG", "image/png")

    with pytest.raises(UnsupportedDocumentError, match="OCR is disabled"):
        ContentTypeTextExtractor(source).extract(DocumentRecord(id=6))


def test_docx_paragraphs_and_tables_are_read(source):
    source.download_content.return_value = (
        _docx_bytes("Invoice #7", "Due on receipt", table=[["Total", "12.00"]]),
        DOCX_CONTENT_TYPE,
    )
    ocr = MagicMock()

    text = ContentTypeTextExtractor(source, ocr=ocr).extract(DocumentRecord(id=7))

    assert text == "Invoice #7\nDue on receipt\nTotal\t12.00"
    ocr.extract_bytes.assert_not_called()


def test_corrupt_docx_raises_text_extraction_error():
    with pytest.raises(TextExtractionError, match="Unable to read DOCX"):
        DocxTextExtractor().extract(b"not a zip archive")


def test_unknown_content_types_are_unsupported(source):
    source.download_content.return_value = (b"PK", "application/zip")

    with pytest.raises(UnsupportedDocumentError, match="Unsupported content type"):
        ContentTypeTextExtractor(source, ocr=MagicMock()).extract(DocumentRecord(id=5))
