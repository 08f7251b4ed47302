"""
OCR Provider
============

Transcribes one page image into plain text with an OpenAI-compatible vision
model (OpenAI or Ollama). This is the part of the raw text extractor that
handles scanned PDFs and images; the result feeds the rule-based pipeline
and is never used for classification or data point extraction directly.

Models are tried in the configured order. A model that refuses, or whose API
call keeps failing after retries, hands over to the next one.
"""

from __future__ import annotations

import base64
from abc import ABC, abstractmethod
from io import BytesIO

import openai
import structlog
from PIL import Image

from common.config import Settings
from common.utils import is_blank, retry

log = structlog.get_logger(__name__)

RETRYABLE_OPENAI_EXCEPTIONS = (
    openai.APIConnectionError,
    openai.APITimeoutError,
    openai.RateLimitError,
    openai.InternalServerError,
)

REFUSAL_MARKERS = (
    "i can't assist",
    "i cannot assist",
    "chatgpt refused to transcribe",
)

TRANSCRIPTION_PROMPT = """
You are an OCR engine in a document processing system. Your only task is to
produce a faithful plain-text transcription of the page image. Do not
summarise, explain, translate or censor anything. Preserve line breaks and
reading order. Reproduce tables using Markdown table syntax. Do NOT wrap the
output in code blocks and do NOT add commentary that is not on the page.
If you must refuse for any reason, output exactly: CHATGPT REFUSED TO TRANSCRIBE
""".strip()


def _is_refusal(text: str) -> bool:
    text_lower = text.lower()
    return any(marker in text_lower for marker in REFUSAL_MARKERS)


class OcrProvider(ABC):
    """Abstract base class for OCR providers."""

    def __init__(self, settings: Settings):
        self.settings = settings

    @abstractmethod
    def transcribe_image(
        self,
        image: Image.Image,
        doc_id: int | None = None,
        page_num: int | None = None,
    ) -> tuple[str, str]:
        """
        Transcribe an image and return (text, model_used).

        Returns ("", "") for blank pages and (REFUSAL_MARK, "") when every
        model failed.
        """
        raise NotImplementedError


class OpenAIProvider(OcrProvider):
    """An OCR provider that uses the OpenAI and Ollama chat completion APIs."""

    @retry(retryable_exceptions=RETRYABLE_OPENAI_EXCEPTIONS)
    def _create_completion(self, **kwargs):
        """A retriable version of openai.chat.completions.create."""
        return openai.chat.completions.create(**kwargs)

    def _encode(self, image: Image.Image) -> str:
        # Resize large images to reduce token cost and latency
        image.thumbnail((self.settings.OCR_MAX_SIDE, self.settings.OCR_MAX_SIDE))
        buffer = BytesIO()
        image.save(buffer, format="PNG")
        return base64.b64encode(buffer.getvalue()).decode()

    def transcribe_image(
        self,
        image: Image.Image,
        doc_id: int | None = None,
        page_num: int | None = None,
    ) -> tuple[str, str]:
        if is_blank(image):
            return "", ""

        messages = [
            {"role": "system", "content": TRANSCRIPTION_PROMPT},
            {
                "role": "user",
                "content": [
                    {
                        "type": "image_url",
                        "image_url": {
                            "url": f"data:image/png;base64,{self._encode(image)}",
                            "detail": "high",
                        },
                    },
                ],
            },
        ]

        for model in dict.fromkeys(self.settings.AI_MODELS):
            try:
                response = self._create_completion(
                    model=model,
                    messages=messages,
                    timeout=self.settings.REQUEST_TIMEOUT,
                )
                text = (response.choices[0].message.content or "").strip()
            except openai.APIError as e:
                log.warning(
                    "OCR model failed",
                    model=model,
                    error=str(e),
                    doc_id=doc_id,
                    page_num=page_num,
                )
                continue

            if _is_refusal(text):
                log.warning(
                    "OCR model refused to transcribe",
                    model=model,
                    doc_id=doc_id,
                    page_num=page_num,
                )
                continue
            return text, model

        log.error("All OCR models failed", doc_id=doc_id, page_num=page_num)
        return self.settings.REFUSAL_MARK, ""
