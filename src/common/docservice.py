"""
Document Service API Client
===========================

Client for the host document service that owns users, uploads, storage and
the relational schema. The daemon uses it for three things:

- reading rule configuration (classifications, patterns, data point
  definitions) from the admin API;
- listing and loading document records and downloading their bytes;
- writing every processing result back (state, raw text, classification,
  extracted data points, summary).

``DocumentServiceClient`` therefore implements both ``ConfigurationStore``
and ``Persistence``. List endpoints are paginated as
``{"results": [...], "next": <url or null>}``.
"""

from __future__ import annotations

import datetime as dt
from typing import Generator

import requests

from .config import Settings
from .exceptions import ClaimConflictError
from .models import (
    Classification,
    DataPointDefinition,
    DataType,
    DocumentRecord,
    DocumentStatus,
    PatternSpec,
    RuleType,
    StoredDataPoint,
)
from .utils import retry

PAGE_SIZE = 100


def classification_from_json(data: dict) -> Classification:
    return Classification(
        id=int(data["id"]),
        name=str(data["name"]),
        description=data.get("description"),
        priority=int(data.get("priority") or 0),
        threshold=_float_or(data.get("threshold"), 0.5),
    )


def _float_or(value, default: float) -> float:
    return default if value is None else float(value)


def pattern_from_json(data: dict) -> PatternSpec:
    return PatternSpec(
        id=data.get("id"),
        pattern=str(data["pattern"]),
        flags=data.get("flags") or None,
    )


def definition_from_json(data: dict, classification_id: int) -> DataPointDefinition:
    return DataPointDefinition(
        id=int(data["id"]),
        classification_id=int(data.get("classification_id", classification_id)),
        key=str(data["key"]),
        label=data.get("label"),
        type=DataType(str(data.get("type", "STRING")).upper()),
        rule_type=RuleType(str(data.get("rule_type", "REGEX")).upper()),
        expression=str(data["expression"]),
        required=bool(data.get("required", False)),
    )


def document_from_json(data: dict) -> DocumentRecord:
    updated_at = data.get("updated_at")
    return DocumentRecord(
        id=int(data["id"]),
        filename=data.get("filename") or "",
        content_type=data.get("mime_type") or "application/octet-stream",
        status=DocumentStatus(str(data.get("status", "PENDING")).upper()),
        classification_id=data.get("classification_id"),
        summary=data.get("summary"),
        updated_at=dt.datetime.fromisoformat(updated_at) if updated_at else None,
    )


class DocumentServiceClient:
    """A client for the host document service REST API."""

    def __init__(self, settings: Settings):
        """Initializes the client with a session and authentication."""
        self.settings = settings
        self._base = settings.DOCSERVICE_URL
        self._session = requests.Session()
        self._session.headers.update(
            {"Authorization": f"Token {self.settings.DOCSERVICE_TOKEN}"}
        )

    def close(self) -> None:
        self._session.close()

    @retry(retryable_exceptions=(requests.exceptions.RequestException,))
    def _send(self, method: str, url: str, **kwargs) -> requests.Response:
        """A retriable version of session.request."""
        return self._session.request(method, url, **kwargs)

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        """Send a request and raise on HTTP error status (not retried)."""
        kwargs.setdefault("timeout", self.settings.REQUEST_TIMEOUT)
        response = self._send(method, url, **kwargs)
        response.raise_for_status()
        return response

    def _get_json(self, url: str):
        return self._request("GET", url).json()

    def _list_all(self, url: str) -> Generator[dict, None, None]:
        """Follow paginated results and yield every item."""
        while url:
            page = self._get_json(url)
            if isinstance(page, list):
                yield from page
                return
            yield from page.get("results", [])
            url = page.get("next")

    # --- ConfigurationStore ---

    def load_classifications(self) -> list[Classification]:
        url = f"{self._base}/api/admin/classifications/?page_size={PAGE_SIZE}"
        classifications = [classification_from_json(c) for c in self._list_all(url)]
        return sorted(classifications, key=lambda c: c.id)

    def load_patterns(self, classification_id: int) -> list[PatternSpec]:
        url = f"{self._base}/api/admin/classifications/{classification_id}/patterns/"
        return [pattern_from_json(p) for p in self._list_all(url)]

    def load_data_point_definitions(
        self, classification_id: int
    ) -> list[DataPointDefinition]:
        url = f"{self._base}/api/admin/classifications/{classification_id}/datapoints/"
        return [
            definition_from_json(d, classification_id) for d in self._list_all(url)
        ]

    def resolve_by_name(self, name: str) -> Classification | None:
        for classification in self.load_classifications():
            if classification.name == name:
                return classification
        return None

    # --- Persistence ---

    def get_document(self, doc_id: int) -> DocumentRecord:
        return document_from_json(self._get_json(f"{self._base}/api/documents/{doc_id}/"))

    def list_documents(self, status: DocumentStatus) -> list[DocumentRecord]:
        url = f"{self._base}/api/documents/?status={status.value}&page_size={PAGE_SIZE}"
        return [document_from_json(d) for d in self._list_all(url)]

    def download_content(self, doc_id: int) -> tuple[bytes, str]:
        """Download the stored file, returning (bytes, content type)."""
        response = self._request("GET", f"{self._base}/api/documents/{doc_id}/download/")
        content_type = response.headers.get("Content-Type", "application/octet-stream")
        return response.content, content_type

    def _patch_document(self, doc_id: int, payload: dict) -> None:
        self._request("PATCH", f"{self._base}/api/documents/{doc_id}/", json=payload)

    def save_document_state(
        self,
        doc_id: int,
        status: DocumentStatus,
        timestamp: dt.datetime,
        expected: DocumentStatus | None = None,
    ) -> None:
        """
        PATCH the document status.

        ``expected`` is sent as ``expected_status``; the service answers 409
        Conflict when the stored status differs, which becomes ClaimConflictError.
        """
        payload = {"status": status.value, "updated_at": timestamp.isoformat()}
        if expected is not None:
            payload["expected_status"] = expected.value
        try:
            self._patch_document(doc_id, payload)
        except requests.exceptions.HTTPError as e:
            conflict = e.response is not None and e.response.status_code == 409
            if expected is not None and conflict:
                raise ClaimConflictError(
                    f"Document {doc_id} is no longer {expected.value}"
                ) from e
            raise

    def save_raw_text(self, doc_id: int, text: str) -> None:
        self._request(
            "PUT", f"{self._base}/api/documents/{doc_id}/text/", json={"text": text}
        )

    def save_classification(
        self, doc_id: int, classification_id: int, score: float | None
    ) -> None:
        self._patch_document(
            doc_id,
            {"classification_id": classification_id, "classification_score": score},
        )

    def clear_extracted_values(self, doc_id: int) -> None:
        self._request("DELETE", f"{self._base}/api/documents/{doc_id}/extracted/")

    def save_extracted_value(
        self, doc_id: int, definition_id: int, value: StoredDataPoint
    ) -> None:
        self._request(
            "PUT",
            f"{self._base}/api/documents/{doc_id}/extracted/{definition_id}/",
            json=value.to_payload(),
        )

    def save_summary(self, doc_id: int, text: str) -> None:
        self._patch_document(doc_id, {"summary": text})
