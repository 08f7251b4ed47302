"""
OCR Text Extraction
===================

Turns the bytes of a scanned PDF or image into plain text:

1. rasterise PDF pages (pdf2image) or open the image (Pillow, every frame of
   a multi-page TIFF);
2. transcribe the pages concurrently with the OCR provider;
3. join non-empty pages, prefixing ``--- Page N ---`` headers when the
   document has more than one page.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from io import BytesIO

import structlog
from PIL import Image, ImageSequence, UnidentifiedImageError
from pdf2image import convert_from_bytes

from common.config import Settings
from common.exceptions import TextExtractionError
from .provider import OcrProvider

log = structlog.get_logger(__name__)


class OcrTextExtractor:
    """Extract text from PDF and image bytes through an OCR provider."""

    def __init__(self, provider: OcrProvider, settings: Settings):
        self.provider = provider
        self.settings = settings

    def extract_bytes(self, doc_id: int, content: bytes, content_type: str) -> str:
        images = self._bytes_to_images(content, content_type)
        if not images:
            raise TextExtractionError(f"Document {doc_id} has no pages")
        try:
            page_texts = self._transcribe_pages(doc_id, images)
        finally:
            for image in images:
                image.close()

        text = self._assemble(page_texts)
        if not text.strip():
            raise TextExtractionError(f"OCR produced no text for document {doc_id}")
        return text

    def _bytes_to_images(self, content: bytes, content_type: str) -> list[Image.Image]:
        if "pdf" in content_type:
            return convert_from_bytes(content, dpi=self.settings.OCR_DPI)
        try:
            img = Image.open(BytesIO(content))
            img.load()
        except UnidentifiedImageError as e:
            raise TextExtractionError(f"Unable to open image: {e}") from e
        if getattr(img, "n_frames", 1) > 1:
            frames = [frame.copy() for frame in ImageSequence.Iterator(img)]
            img.close()
            return frames
        return [img]

    def _transcribe_pages(self, doc_id: int, images: list[Image.Image]) -> list[str]:
        """Run OCR on each page concurrently, keeping page order."""
        results = [""] * len(images)
        with ThreadPoolExecutor(max_workers=self.settings.PAGE_WORKERS) as executor:
            future_to_index = {
                executor.submit(
                    self.provider.transcribe_image, image, doc_id, index + 1
                ): index
                for index, image in enumerate(images)
            }
            for future in as_completed(future_to_index):
                index = future_to_index[future]
                text, _model = future.result()
                if text == self.settings.REFUSAL_MARK:
                    raise TextExtractionError(
                        f"OCR failed on page {index + 1} of document {doc_id}"
                    )
                results[index] = text
        log.info("OCR finished", doc_id=doc_id, pages=len(images))
        return results

    @staticmethod
    def _assemble(page_texts: list[str]) -> str:
        multi_page = len(page_texts) > 1
        sections = []
        for number, text in enumerate(page_texts, 1):
            if not text.strip():
                continue
            header = f"--- Page {number} ---\n" if multi_page else ""
            sections.append(f"{header}{text}")
        return "\n\n".join(sections)
