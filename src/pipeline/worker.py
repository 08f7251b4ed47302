"""
Document Processing Worker
==========================

This module defines the ``DocumentProcessor``, which drives one document
through the whole pipeline:

    raw text -> classification -> data point extraction -> summary

It owns the document's status for the duration of the call:

- PENDING (or FAILED, for a reprocess) moves to PROCESSING before any stage
  runs. The claim is a compare-and-set on the status read at the start, so
  when two workers race for a document only one of them processes it;
- success ends in COMPLETED;
- any error ends in FAILED, persisted before ``DocumentProcessingError`` is
  raised, so no document is left in PROCESSING when ``process`` returns.

Rule problems (bad patterns, bad expressions, values that do not coerce) are
absorbed inside the stages. Only configuration and text extraction errors
fail a document.
"""

from __future__ import annotations

import datetime as dt
from typing import Callable, Literal

import structlog

from classifier.engine import classify, passes_threshold
from classifier.rules import RuleCache, RuleSet
from common.exceptions import (
    ClaimConflictError,
    ConfigurationError,
    DocumentProcessingError,
    TextExtractionError,
)
from common.models import (
    Classification,
    DocumentRecord,
    DocumentStatus,
    OutcomeStatus,
    UNDEFINED_CLASSIFICATION,
    check_transition,
)
from common.stores import ConfigurationStore, Persistence, RawTextExtractor
from extraction.coercion import coerce
from extraction.engine import ExtractionContext, evaluate
from summarizer.tfidf import summarize

log = structlog.get_logger(__name__)

DEFAULT_SUMMARY_SENTENCES = 5

CLAIMABLE_STATUSES = (DocumentStatus.PENDING, DocumentStatus.FAILED)


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class DocumentProcessor:
    """
    Orchestrates the processing of a single document.
    """

    def __init__(
        self,
        doc_id: int,
        config_store: ConfigurationStore,
        persistence: Persistence,
        text_extractor: RawTextExtractor,
        rule_cache: RuleCache | None = None,
        summary_sentences: int = DEFAULT_SUMMARY_SENTENCES,
        clock: Callable[[], dt.datetime] = utcnow,
    ):
        self.doc_id = doc_id
        self.config_store = config_store
        self.persistence = persistence
        self.text_extractor = text_extractor
        self.rule_cache = rule_cache or RuleCache(config_store)
        self.summary_sentences = summary_sentences
        self.clock = clock
        self.status: DocumentStatus | None = None

    def process(self) -> bool:
        """
        Run the pipeline. Returns False when the document was not claimable.

        Raises DocumentProcessingError after the FAILED state has been saved.
        """
        document = self.persistence.get_document(self.doc_id)
        if document.status not in CLAIMABLE_STATUSES:
            log.info(
                "Document not claimable; skipping",
                doc_id=self.doc_id,
                status=document.status.value,
            )
            return False

        log.info("Processing document", doc_id=self.doc_id, filename=document.filename)
        start_time = self.clock()
        self.status = document.status
        try:
            self._set_status(DocumentStatus.PROCESSING, expected=document.status)
            self._run_stages(document)
            self._set_status(DocumentStatus.COMPLETED)
        except ClaimConflictError as e:
            log.info(
                "Document claimed by another worker; skipping",
                doc_id=self.doc_id,
                error=str(e),
            )
            return False
        except Exception as e:
            self._mark_failed(e)
            raise DocumentProcessingError(self.doc_id, str(e)) from e

        elapsed_time = (self.clock() - start_time).total_seconds()
        log.info(
            "Finished processing document",
            doc_id=self.doc_id,
            elapsed_time=f"{elapsed_time:.2f}s",
        )
        return True

    def _set_status(
        self, target: DocumentStatus, expected: DocumentStatus | None = None
    ) -> None:
        check_transition(self.status, target)
        self.persistence.save_document_state(
            self.doc_id, target, self.clock(), expected=expected
        )
        self.status = target

    def _mark_failed(self, error: Exception) -> None:
        log.error(
            "Document processing failed",
            doc_id=self.doc_id,
            error=str(error),
            error_type=type(error).__name__,
        )
        try:
            self.persistence.save_document_state(
                self.doc_id, DocumentStatus.FAILED, self.clock()
            )
            self.status = DocumentStatus.FAILED
        except Exception:
            log.exception("Failed to persist FAILED state", doc_id=self.doc_id)

    def _run_stages(self, document: DocumentRecord) -> None:
        text = self._extract_text(document)
        self.persistence.save_raw_text(self.doc_id, text)

        classification = self._classify(text, self.rule_cache.snapshot())
        self._extract_data_points(text, classification)

        summary = summarize(text, self.summary_sentences)
        self.persistence.save_summary(self.doc_id, summary)

    def _extract_text(self, document: DocumentRecord) -> str:
        try:
            text = self.text_extractor.extract(document)
        except TextExtractionError:
            raise
        except Exception as e:
            raise TextExtractionError(
                f"Failed to extract text from document: {document.filename or self.doc_id}"
            ) from e
        log.info("Extracted raw text", doc_id=self.doc_id, chars=len(text))
        return text

    def _classify(self, text: str, rules: RuleSet) -> Classification:
        """Classify, apply the threshold gate and persist the chosen classification."""
        result = classify(text, rules.candidates)
        if passes_threshold(result):
            classification, score = result.classification, result.score
        else:
            if rules.fallback is None:
                raise ConfigurationError(
                    f"'{UNDEFINED_CLASSIFICATION}' classification not found"
                )
            classification, score = rules.fallback, None
            log.info(
                "No classification passed its threshold; using fallback",
                doc_id=self.doc_id,
                best=result.classification.name if result else None,
                best_score=result.score if result else None,
            )

        self.persistence.save_classification(self.doc_id, classification.id, score)
        log.info(
            "Classified document",
            doc_id=self.doc_id,
            classification=classification.name,
            score=score,
        )
        return classification

    def _extract_data_points(self, text: str, classification: Classification) -> None:
        definitions = self.config_store.load_data_point_definitions(classification.id)
        self.persistence.clear_extracted_values(self.doc_id)
        if not definitions:
            return

        ctx = ExtractionContext.from_text(text)
        stored = 0
        for definition in definitions:
            outcome = evaluate(definition, ctx)
            if outcome.status == OutcomeStatus.INVALID_RULE:
                log.warning(
                    "Invalid data point rule",
                    doc_id=self.doc_id,
                    definition_id=definition.id,
                    key=definition.key,
                    error=outcome.error,
                )
                continue
            if outcome.status == OutcomeStatus.NO_MATCH:
                if definition.required:
                    log.info(
                        "Required data point not found",
                        doc_id=self.doc_id,
                        key=definition.key,
                    )
                continue

            point = coerce(definition, classification, outcome.value)
            self.persistence.save_extracted_value(self.doc_id, definition.id, point)
            stored += 1

        log.info(
            "Extracted data points",
            doc_id=self.doc_id,
            classification=classification.name,
            definitions=len(definitions),
            stored=stored,
        )


def process_document(
    doc_id: int,
    config_store: ConfigurationStore,
    persistence: Persistence,
    text_extractor: RawTextExtractor,
    rule_cache: RuleCache | None = None,
    summary_sentences: int = DEFAULT_SUMMARY_SENTENCES,
) -> None:
    """Process one document; results land in ``persistence``."""
    DocumentProcessor(
        doc_id,
        config_store,
        persistence,
        text_extractor,
        rule_cache=rule_cache,
        summary_sentences=summary_sentences,
    ).process()


def recover_stale_documents(
    persistence: Persistence,
    action: Literal["requeue", "fail"] = "requeue",
    clock: Callable[[], dt.datetime] = utcnow,
) -> list[int]:
    """
    Move documents left in PROCESSING (e.g. by a shutdown) out of that state.

    ``requeue`` puts them back to PENDING, ``fail`` marks them FAILED.
    Returns the ids that were moved.
    """
    target = DocumentStatus.PENDING if action == "requeue" else DocumentStatus.FAILED
    moved = []
    for document in persistence.list_documents(DocumentStatus.PROCESSING):
        check_transition(DocumentStatus.PROCESSING, target)
        try:
            persistence.save_document_state(
                document.id, target, clock(), expected=DocumentStatus.PROCESSING
            )
        except ClaimConflictError:
            log.info("Stale document changed state; leaving it", doc_id=document.id)
            continue
        moved.append(document.id)
    if moved:
        log.warning(
            "Recovered stale documents",
            action=action,
            target=target.value,
            doc_ids=moved,
        )
    return moved
