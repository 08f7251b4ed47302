"""
Configuration module for the document processing daemon.

All configuration comes from environment variables. The `Settings` class
loads and validates them in one place so the rest of the code can read plain
attributes.
"""

import os
from typing import Literal

import openai
from PIL import Image

DEFAULT_OPENAI_MODELS = ["gpt-5-mini", "o4-mini"]
DEFAULT_OLLAMA_MODELS = ["gemma3:27b", "gemma3:12b"]

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _parse_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _parse_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


class Settings:
    """
    A container for all configuration settings, loaded from environment variables.

    Optional settings fall back to defaults; missing required settings raise
    ``ValueError``.
    """

    # --- Document service ---
    DOCSERVICE_URL: str
    DOCSERVICE_TOKEN: str

    # --- Daemon ---
    POLL_INTERVAL: int
    DOCUMENT_WORKERS: int
    MAX_RETRIES: int
    MAX_RETRY_BACKOFF_SECONDS: int
    REQUEST_TIMEOUT: int
    STALE_PROCESSING_ACTION: Literal["requeue", "fail"]

    # --- Pipeline ---
    SUMMARY_MAX_SENTENCES: int

    # --- Logging ---
    LOG_LEVEL: str
    LOG_FORMAT: Literal["console", "json"]

    # --- OCR text extraction ---
    OCR_ENABLED: bool
    LLM_PROVIDER: Literal["openai", "ollama"]
    OLLAMA_BASE_URL: str | None
    OPENAI_API_KEY: str | None
    AI_MODELS: list[str]
    OCR_DPI: int
    OCR_MAX_SIDE: int
    PAGE_WORKERS: int

    REFUSAL_MARK: str = "CHATGPT REFUSED TO TRANSCRIBE"

    def __init__(self):
        """
        Loads settings from environment variables and performs validation.
        """
        self.DOCSERVICE_URL = os.getenv(
            "DOCSERVICE_URL", "http://docservice:8080"
        ).rstrip("/")
        self.DOCSERVICE_TOKEN = self._get_required_env("DOCSERVICE_TOKEN")

        self.POLL_INTERVAL = int(os.getenv("POLL_INTERVAL", 15))
        self.DOCUMENT_WORKERS = max(1, int(os.getenv("DOCUMENT_WORKERS", 4)))
        self.MAX_RETRIES = int(os.getenv("MAX_RETRIES", 5))
        if self.MAX_RETRIES < 1:
            raise ValueError("MAX_RETRIES must be >= 1")
        self.MAX_RETRY_BACKOFF_SECONDS = int(os.getenv("MAX_RETRY_BACKOFF_SECONDS", 30))
        self.REQUEST_TIMEOUT = int(os.getenv("REQUEST_TIMEOUT", 180))

        self.STALE_PROCESSING_ACTION = os.getenv(
            "STALE_PROCESSING_ACTION", "requeue"
        ).lower()
        if self.STALE_PROCESSING_ACTION not in ("requeue", "fail"):
            raise ValueError("STALE_PROCESSING_ACTION must be 'requeue' or 'fail'")

        self.SUMMARY_MAX_SENTENCES = int(os.getenv("SUMMARY_MAX_SENTENCES", 5))
        if self.SUMMARY_MAX_SENTENCES < 1:
            raise ValueError("SUMMARY_MAX_SENTENCES must be >= 1")

        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self.LOG_FORMAT = os.getenv("LOG_FORMAT", "console").lower()
        if self.LOG_FORMAT not in ("console", "json"):
            raise ValueError("LOG_FORMAT must be 'console' or 'json'")

        self.OCR_ENABLED = _parse_bool(os.getenv("OCR_ENABLED"), default=False)
        self.LLM_PROVIDER = os.getenv("LLM_PROVIDER", "openai").lower()
        if self.LLM_PROVIDER not in ("openai", "ollama"):
            raise ValueError("LLM_PROVIDER must be 'openai' or 'ollama'")

        if self.LLM_PROVIDER == "ollama":
            self.OLLAMA_BASE_URL = os.getenv(
                "OLLAMA_BASE_URL", "http://localhost:11434/v1/"
            )
            self.OPENAI_API_KEY = None
            default_models = DEFAULT_OLLAMA_MODELS
        else:
            self.OLLAMA_BASE_URL = None
            self.OPENAI_API_KEY = (
                self._get_required_env("OPENAI_API_KEY")
                if self.OCR_ENABLED
                else os.getenv("OPENAI_API_KEY")
            )
            default_models = DEFAULT_OPENAI_MODELS
        self.AI_MODELS = _parse_list(os.getenv("AI_MODELS")) or list(default_models)

        self.OCR_DPI = int(os.getenv("OCR_DPI", 300))
        self.OCR_MAX_SIDE = int(os.getenv("OCR_MAX_SIDE", 1600))
        self.PAGE_WORKERS = max(1, int(os.getenv("PAGE_WORKERS", 4)))

    def _get_required_env(self, var_name: str) -> str:
        """
        Gets a required environment variable, raising an error if it's not set.
        """
        value = os.getenv(var_name)
        if value is None:
            raise ValueError(f"Required environment variable '{var_name}' is not set.")
        return value


def setup_libraries(settings: Settings) -> None:
    """
    Configures third-party libraries used by the OCR text extractor.
    """
    if not settings.OCR_ENABLED:
        return

    # Scanned pages at high DPI easily exceed Pillow's default pixel limit
    Image.MAX_IMAGE_PIXELS = None

    if settings.LLM_PROVIDER == "ollama":
        openai.base_url = settings.OLLAMA_BASE_URL
        openai.api_key = "dummy"
    else:
        openai.api_key = settings.OPENAI_API_KEY
