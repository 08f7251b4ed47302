"""
Pipeline package.

Drives a document through text extraction, classification, data point
extraction and summarization, and hosts the polling daemon.
"""

from .text_extraction import (
    ContentTypeTextExtractor,
    DocxTextExtractor,
    PdfTextLayerExtractor,
    PlainTextExtractor,
)
from .worker import DocumentProcessor, process_document, recover_stale_documents

__all__ = [
    "ContentTypeTextExtractor",
    "DocumentProcessor",
    "DocxTextExtractor",
    "PdfTextLayerExtractor",
    "PlainTextExtractor",
    "process_document",
    "recover_stale_documents",
]
