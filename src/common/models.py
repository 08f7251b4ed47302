"""
Domain Models
=============

Plain value objects shared by the rule compiler, classifier, extractor and
pipeline. Configuration objects (classifications, patterns, data point
definitions) are frozen: the pipeline only ever reads them.
"""

from __future__ import annotations

import datetime as dt
import enum
from dataclasses import dataclass
from decimal import Decimal

from .exceptions import InvalidTransitionError

UNDEFINED_CLASSIFICATION = "undefined"
DEFAULT_CONFIDENCE = 0.9


class DocumentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


# FAILED -> PROCESSING is a reprocess; PROCESSING -> PENDING is the recovery requeue.
_ALLOWED_TRANSITIONS = {
    DocumentStatus.PENDING: {DocumentStatus.PROCESSING},
    DocumentStatus.PROCESSING: {
        DocumentStatus.COMPLETED,
        DocumentStatus.FAILED,
        DocumentStatus.PENDING,
    },
    DocumentStatus.FAILED: {DocumentStatus.PROCESSING},
    DocumentStatus.COMPLETED: set(),
}


def check_transition(current: DocumentStatus, target: DocumentStatus) -> None:
    """Raise InvalidTransitionError unless ``current -> target`` is allowed."""
    if target not in _ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(
            f"Cannot move document from {current.value} to {target.value}"
        )


class DataType(str, enum.Enum):
    STRING = "STRING"
    NUMBER = "NUMBER"
    DATE = "DATE"
    BOOLEAN = "BOOLEAN"
    CURRENCY = "CURRENCY"


class RuleType(str, enum.Enum):
    REGEX = "REGEX"
    JSON_PATH = "JSON_PATH"
    XPATH = "XPATH"


class OutcomeStatus(str, enum.Enum):
    MATCHED = "MATCHED"
    NO_MATCH = "NO_MATCH"
    INVALID_RULE = "INVALID_RULE"


@dataclass(frozen=True)
class Classification:
    id: int
    name: str
    description: str | None = None
    priority: int = 0
    threshold: float = 0.5

    @property
    def is_fallback(self) -> bool:
        return self.name == UNDEFINED_CLASSIFICATION


@dataclass(frozen=True)
class PatternSpec:
    pattern: str
    flags: str | None = None
    id: int | None = None


@dataclass(frozen=True)
class DataPointDefinition:
    id: int
    classification_id: int
    key: str
    expression: str
    type: DataType = DataType.STRING
    rule_type: RuleType = RuleType.REGEX
    label: str | None = None
    required: bool = False


@dataclass(frozen=True)
class ExtractedValue:
    raw: str
    confidence: float = DEFAULT_CONFIDENCE
    page: int | None = None
    span_start: int | None = None
    span_end: int | None = None


@dataclass(frozen=True)
class RuleOutcome:
    """Result of evaluating one data point rule; evaluation never raises."""

    status: OutcomeStatus
    value: ExtractedValue | None = None
    error: str | None = None

    @classmethod
    def matched(cls, value: ExtractedValue) -> RuleOutcome:
        return cls(OutcomeStatus.MATCHED, value=value)

    @classmethod
    def no_match(cls) -> RuleOutcome:
        return cls(OutcomeStatus.NO_MATCH)

    @classmethod
    def invalid(cls, error: str) -> RuleOutcome:
        return cls(OutcomeStatus.INVALID_RULE, error=error)


@dataclass(frozen=True)
class ClassificationResult:
    classification: Classification
    score: float


@dataclass(frozen=True)
class StoredDataPoint:
    """Typed data point as handed to the persistence collaborator."""

    key: str
    type: DataType
    classification_id: int
    definition_id: int
    confidence: float
    value_string: str | None = None
    value_number: Decimal | None = None
    value_date: dt.date | None = None
    page: int | None = None
    span_start: int | None = None
    span_end: int | None = None

    def to_payload(self) -> dict:
        """JSON-serialisable representation used by the REST client."""
        return {
            "key": self.key,
            "type": self.type.value,
            "classification_id": self.classification_id,
            "definition_id": self.definition_id,
            "value_string": self.value_string,
            "value_number": (
                str(self.value_number) if self.value_number is not None else None
            ),
            "value_date": self.value_date.isoformat() if self.value_date else None,
            "confidence": self.confidence,
            "page": self.page,
            "span_start": self.span_start,
            "span_end": self.span_end,
        }


@dataclass
class DocumentRecord:
    id: int
    filename: str = ""
    content_type: str = "application/octet-stream"
    status: DocumentStatus = DocumentStatus.PENDING
    classification_id: int | None = None
    summary: str | None = None
    updated_at: dt.datetime | None = None
