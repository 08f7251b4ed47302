"""
Document Processing Daemon
==========================

This script polls the document service for PENDING documents and runs each
one through the rule-based pipeline: raw text, classification, data point
extraction and summary.

On start-up, documents left in PROCESSING by an earlier run are requeued or
failed according to ``STALE_PROCESSING_ACTION``.
"""

from __future__ import annotations

import structlog

from classifier.rules import RuleCache
from common.config import Settings, setup_libraries
from common.daemon_loop import run_polling_threadpool
from common.docservice import DocumentServiceClient
from common.logging_config import configure_logging
from common.models import DocumentRecord, DocumentStatus
from ocr.extractor import OcrTextExtractor
from ocr.provider import OpenAIProvider
from .text_extraction import ContentTypeTextExtractor
from .worker import DocumentProcessor, recover_stale_documents


def build_text_extractor(
    client: DocumentServiceClient, settings: Settings
) -> ContentTypeTextExtractor:
    ocr = None
    if settings.OCR_ENABLED:
        ocr = OcrTextExtractor(OpenAIProvider(settings), settings)
    return ContentTypeTextExtractor(client, ocr=ocr)


def main() -> None:
    """Main loop for the document processing daemon."""
    log = structlog.get_logger(__name__)

    try:
        settings = Settings()
        configure_logging(settings)
        setup_libraries(settings)
    except ValueError as e:
        log.error("Configuration error", error=e)
        return

    log.info(
        "Starting document processing daemon",
        docservice_url=settings.DOCSERVICE_URL,
        poll_interval=settings.POLL_INTERVAL,
        document_workers=settings.DOCUMENT_WORKERS,
        summary_max_sentences=settings.SUMMARY_MAX_SENTENCES,
        ocr_enabled=settings.OCR_ENABLED,
        llm_provider=settings.LLM_PROVIDER,
        ai_models=settings.AI_MODELS,
    )

    list_client = DocumentServiceClient(settings)
    rules_client = DocumentServiceClient(settings)
    rule_cache = RuleCache(rules_client)

    def process_document(document: DocumentRecord) -> None:
        client = DocumentServiceClient(settings)
        try:
            processor = DocumentProcessor(
                document.id,
                client,
                client,
                build_text_extractor(client, settings),
                rule_cache=rule_cache,
                summary_sentences=settings.SUMMARY_MAX_SENTENCES,
            )
            processor.process()
        finally:
            client.close()

    try:
        recover_stale_documents(list_client, settings.STALE_PROCESSING_ACTION)
        run_polling_threadpool(
            daemon_name="pipeline",
            fetch_work=lambda: list_client.list_documents(DocumentStatus.PENDING),
            process_item=process_document,
            before_each_batch=lambda _: rule_cache.refresh(),
            poll_interval_seconds=settings.POLL_INTERVAL,
            max_workers=settings.DOCUMENT_WORKERS,
        )
    finally:
        list_client.close()
        rules_client.close()


if __name__ == "__main__":
    main()
