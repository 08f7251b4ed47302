"""
OCR domain package.

This package contains:

- the OCR provider abstraction and the OpenAI-compatible implementation
- the extractor that turns scanned PDF and image bytes into page text
"""

from .extractor import OcrTextExtractor
from .provider import OcrProvider, OpenAIProvider

__all__ = [
    "OcrProvider",
    "OcrTextExtractor",
    "OpenAIProvider",
]
