"""
Collaborator Interfaces
=======================

The pipeline never talks to a database or an HTTP API directly. It consumes
three narrow interfaces:

- ``RawTextExtractor`` turns a stored document into plain text;
- ``ConfigurationStore`` exposes classifications, patterns and data point
  definitions (read-only during processing);
- ``Persistence`` loads document records and receives every result.

``InMemoryStore`` implements both store interfaces and is used by the test
suite and for embedding the pipeline in other programs. The REST-backed
implementation lives in ``common.docservice``.
"""

from __future__ import annotations

import datetime as dt
import threading
from typing import Iterable, Protocol

from .exceptions import ClaimConflictError
from .models import (
    Classification,
    DataPointDefinition,
    DocumentRecord,
    DocumentStatus,
    PatternSpec,
    StoredDataPoint,
)


class RawTextExtractor(Protocol):
    def extract(self, document: DocumentRecord) -> str: ...


class ConfigurationStore(Protocol):
    def load_classifications(self) -> list[Classification]: ...

    def load_patterns(self, classification_id: int) -> list[PatternSpec]: ...

    def load_data_point_definitions(
        self, classification_id: int
    ) -> list[DataPointDefinition]: ...

    def resolve_by_name(self, name: str) -> Classification | None: ...


class Persistence(Protocol):
    def get_document(self, doc_id: int) -> DocumentRecord: ...

    def list_documents(self, status: DocumentStatus) -> list[DocumentRecord]: ...

    def save_document_state(
        self,
        doc_id: int,
        status: DocumentStatus,
        timestamp: dt.datetime,
        expected: DocumentStatus | None = None,
    ) -> None:
        """
        Persist ``status``.

        With ``expected`` the write is a compare-and-set: it only happens if the
        stored status still equals ``expected``, otherwise ClaimConflictError.
        """

    def save_raw_text(self, doc_id: int, text: str) -> None: ...

    def save_classification(
        self, doc_id: int, classification_id: int, score: float | None
    ) -> None: ...

    def clear_extracted_values(self, doc_id: int) -> None: ...

    def save_extracted_value(
        self, doc_id: int, definition_id: int, value: StoredDataPoint
    ) -> None: ...

    def save_summary(self, doc_id: int, text: str) -> None: ...


class InMemoryStore:
    """
    Thread-safe in-memory configuration store and persistence.

    Writes are upserts keyed the same way the relational schema is keyed
    (one raw text per document, one data point per document and definition),
    so reprocessing a document overwrites its outputs.
    """

    def __init__(
        self,
        classifications: Iterable[Classification] = (),
        patterns: dict[int, list[PatternSpec]] | None = None,
        definitions: Iterable[DataPointDefinition] = (),
        documents: Iterable[DocumentRecord] = (),
    ):
        self._lock = threading.RLock()
        self._classifications = {c.id: c for c in classifications}
        self._patterns = {k: list(v) for k, v in (patterns or {}).items()}
        self._definitions = list(definitions)
        self.documents: dict[int, DocumentRecord] = {d.id: d for d in documents}
        self.raw_texts: dict[int, str] = {}
        self.classification_scores: dict[int, float | None] = {}
        self.extracted: dict[int, dict[int, StoredDataPoint]] = {}
        self.state_history: list[tuple[int, DocumentStatus]] = []

    # --- configuration (admin side) ---

    def add_classification(
        self, classification: Classification, patterns: Iterable[PatternSpec] = ()
    ) -> None:
        with self._lock:
            self._classifications[classification.id] = classification
            self._patterns.setdefault(classification.id, []).extend(patterns)

    def add_definition(self, definition: DataPointDefinition) -> None:
        with self._lock:
            self._definitions.append(definition)

    def add_document(self, document: DocumentRecord) -> None:
        with self._lock:
            self.documents[document.id] = document

    # --- ConfigurationStore ---

    def load_classifications(self) -> list[Classification]:
        with self._lock:
            return sorted(self._classifications.values(), key=lambda c: c.id)

    def load_patterns(self, classification_id: int) -> list[PatternSpec]:
        with self._lock:
            return list(self._patterns.get(classification_id, []))

    def load_data_point_definitions(
        self, classification_id: int
    ) -> list[DataPointDefinition]:
        with self._lock:
            return [
                d for d in self._definitions if d.classification_id == classification_id
            ]

    def resolve_by_name(self, name: str) -> Classification | None:
        with self._lock:
            for classification in self._classifications.values():
                if classification.name == name:
                    return classification
        return None

    # --- Persistence ---

    def get_document(self, doc_id: int) -> DocumentRecord:
        with self._lock:
            try:
                return self.documents[doc_id]
            except KeyError:
                raise LookupError(f"Document {doc_id} not found") from None

    def list_documents(self, status: DocumentStatus) -> list[DocumentRecord]:
        with self._lock:
            return [
                doc
                for _, doc in sorted(self.documents.items())
                if doc.status == status
            ]

    def save_document_state(
        self,
        doc_id: int,
        status: DocumentStatus,
        timestamp: dt.datetime,
        expected: DocumentStatus | None = None,
    ) -> None:
        with self._lock:
            doc = self.get_document(doc_id)
            if expected is not None and doc.status != expected:
                raise ClaimConflictError(
                    f"Document {doc_id} is {doc.status.value}, expected {expected.value}"
                )
            doc.status = status
            doc.updated_at = timestamp
            self.state_history.append((doc_id, status))

    def save_raw_text(self, doc_id: int, text: str) -> None:
        with self._lock:
            self.raw_texts[doc_id] = text

    def save_classification(
        self, doc_id: int, classification_id: int, score: float | None
    ) -> None:
        with self._lock:
            self.get_document(doc_id).classification_id = classification_id
            self.classification_scores[doc_id] = score

    def clear_extracted_values(self, doc_id: int) -> None:
        with self._lock:
            self.extracted.pop(doc_id, None)

    def save_extracted_value(
        self, doc_id: int, definition_id: int, value: StoredDataPoint
    ) -> None:
        with self._lock:
            self.extracted.setdefault(doc_id, {})[definition_id] = value

    def save_summary(self, doc_id: int, text: str) -> None:
        with self._lock:
            self.get_document(doc_id).summary = text
