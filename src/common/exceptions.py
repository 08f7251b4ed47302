"""
Exceptions raised by the document processing pipeline.

Only configuration problems and raw text extraction failures escape a single
document's processing. Rule evaluation problems never raise; they surface as
``RuleOutcome`` values or dropped patterns instead.
"""


class ProcessingError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(ProcessingError):
    """Rule configuration cannot support processing (e.g. no fallback)."""


class TextExtractionError(ProcessingError):
    """The raw text extractor could not produce text for a document."""


class UnsupportedDocumentError(TextExtractionError):
    """The document's content type has no text extractor."""


class InvalidTransitionError(ProcessingError):
    """A document status change is not allowed by the state machine."""


class ClaimConflictError(ProcessingError):
    """The document was no longer in the expected status when it was claimed."""


class DocumentProcessingError(ProcessingError):
    """Raised after a document has been durably marked as FAILED."""

    def __init__(self, doc_id: int, message: str):
        super().__init__(f"Document {doc_id} failed: {message}")
        self.doc_id = doc_id
