import datetime as dt
import os
from decimal import Decimal

import pytest
import requests

from common.config import Settings
from common.docservice import DocumentServiceClient, classification_from_json
from common.exceptions import ClaimConflictError
from common.models import (
    DataType,
    DocumentStatus,
    PatternSpec,
    RuleType,
    StoredDataPoint,
)


@pytest.fixture
def settings(mocker):
    """Fixture to create a Settings object for tests."""
    mocker.patch.dict(
        os.environ,
        {
            "DOCSERVICE_URL": "http://docs.test",
            "DOCSERVICE_TOKEN": "test_token",
            "MAX_RETRIES": "3",
        },
        clear=True,
    )
    return Settings()


@pytest.fixture
def client(settings):
    """Fixture to create a DocumentServiceClient instance."""
    client = DocumentServiceClient(settings)
    yield client
    client.close()


@pytest.fixture(autouse=True)
def no_backoff(mocker):
    return mocker.patch("common.utils._sleep_backoff")


def test_list_documents_follows_pagination(client, requests_mock):
    requests_mock.get(
        "http://docs.test/api/documents/?status=PENDING&page_size=100",
        json={
            "next": "http://docs.test/api/documents/?status=PENDING&page=2",
            "results": [
                {"id": 1, "filename": "a.pdf", "mime_type": "application/pdf", "status": "PENDING"},
                {"id": 2, "status": "PENDING", "updated_at": "2024-03-01T12:00:00+00:00"},
            ],
        },
    )
    requests_mock.get(
        "http://docs.test/api/documents/?status=PENDING&page=2",
        json={"next": None, "results": [{"id": 3, "status": "PENDING"}]},
    )

    documents = client.list_documents(DocumentStatus.PENDING)

    assert [d.id for d in documents] == [1, 2, 3]
    assert documents[0].content_type == "application/pdf"
    assert documents[0].filename == "a.pdf"
    assert documents[1].content_type == "application/octet-stream"
    assert documents[1].updated_at == dt.datetime(2024, 3, 1, 12, 0, tzinfo=dt.timezone.utc)
    assert requests_mock.request_history[0].headers["Authorization"] == "Token test_token"


def test_get_document(client, requests_mock):
    requests_mock.get(
        "http://docs.test/api/documents/7/",
        json={"id": 7, "status": "failed", "classification_id": 3, "summary": "s"},
    )

    document = client.get_document(7)

    assert document.status == DocumentStatus.FAILED
    assert document.classification_id == 3


def test_load_configuration(client, requests_mock):
    requests_mock.get(
        "http://docs.test/api/admin/classifications/?page_size=100",
        json={
            "next": None,
            "results": [
                {"id": 5, "name": "Invoice", "priority": 10, "threshold": 0.3},
                {"id": 1, "name": "undefined", "priority": None},
            ],
        },
    )
    requests_mock.get(
        "http://docs.test/api/admin/classifications/5/patterns/",
        json=[{"id": 9, "pattern": "invoice", "flags": "i"}, {"id": 10, "pattern": "bill", "flags": ""}],
    )
    requests_mock.get(
        "http://docs.test/api/admin/classifications/5/datapoints/",
        json={
            "next": None,
            "results": [
                {
                    "id": 11,
                    "key": "total",
                    "type": "currency",
                    "rule_type": "json_path",
                    "expression": "$.total",
                    "required": True,
                }
            ],
        },
    )

    classifications = client.load_classifications()
    patterns = client.load_patterns(5)
    (definition,) = client.load_data_point_definitions(5)

    assert [c.name for c in classifications] == ["undefined", "Invoice"]
    assert classifications[1].priority == 10
    assert classifications[1].threshold == 0.3
    assert classifications[0].threshold == 0.5
    assert patterns == [PatternSpec("invoice", "i", 9), PatternSpec("bill", None, 10)]
    assert definition.classification_id == 5
    assert definition.type == DataType.CURRENCY
    assert definition.rule_type == RuleType.JSON_PATH
    assert definition.required is True
    assert client.resolve_by_name("undefined").id == 1
    assert client.resolve_by_name("Receipt") is None


@pytest.mark.parametrize(
    "threshold, expected", [(None, 0.5), (0, 0.0), ("0.75", 0.75)]
)
def test_classification_threshold_defaults_only_when_missing(threshold, expected):
    classification = classification_from_json(
        {"id": 3, "name": "Receipt", "threshold": threshold}
    )

    assert classification.threshold == expected


def test_download_content(client, requests_mock):
    requests_mock.get(
        "http://docs.test/api/documents/1/download/",
        content=b"%PDF-1.7",
        headers={"Content-Type": "application/pdf"},
    )

    content, content_type = client.download_content(1)

    assert content == b"%PDF-1.7"
    assert content_type == "application/pdf"


def test_download_content_defaults_content_type(client, requests_mock):
    requests_mock.get("http://docs.test/api/documents/2/download/", content=b"data", headers={})

    _content, content_type = client.download_content(2)

    assert content_type == "application/octet-stream"


def test_result_writes(client, requests_mock):
    patch = requests_mock.patch("http://docs.test/api/documents/1/")
    put_text = requests_mock.put("http://docs.test/api/documents/1/text/")
    delete = requests_mock.delete("http://docs.test/api/documents/1/extracted/")
    put_value = requests_mock.put("http://docs.test/api/documents/1/extracted/11/")
    point = StoredDataPoint(
        key="total",
        type=DataType.CURRENCY,
        classification_id=5,
        definition_id=11,
        confidence=0.9,
        value_number=Decimal("1234.56"),
    )

    client.save_document_state(
        1, DocumentStatus.PROCESSING, dt.datetime(2024, 3, 1, tzinfo=dt.timezone.utc)
    )
    client.save_raw_text(1, "raw text")
    client.save_classification(1, 5, 1.1)
    client.clear_extracted_values(1)
    client.save_extracted_value(1, 11, point)
    client.save_summary(1, "summary")

    assert [r.json() for r in patch.request_history] == [
        {"status": "PROCESSING", "updated_at": "2024-03-01T00:00:00+00:00"},
        {"classification_id": 5, "classification_score": 1.1},
        {"summary": "summary"},
    ]
    assert put_text.last_request.json() == {"text": "raw text"}
    assert delete.called
    assert put_value.last_request.json()["value_number"] == "1234.56"
    assert put_value.last_request.json()["type"] == "CURRENCY"


def test_claim_sends_expected_status(client, requests_mock):
    patch = requests_mock.patch("http://docs.test/api/documents/1/")

    client.save_document_state(
        1,
        DocumentStatus.PROCESSING,
        dt.datetime(2024, 3, 1, tzinfo=dt.timezone.utc),
        expected=DocumentStatus.PENDING,
    )

    assert patch.last_request.json()["expected_status"] == "PENDING"


def test_claim_conflict_raises(client, requests_mock):
    requests_mock.patch("http://docs.test/api/documents/1/", status_code=409)
    now = dt.datetime(2024, 3, 1, tzinfo=dt.timezone.utc)

    with pytest.raises(ClaimConflictError, match="no longer PENDING"):
        client.save_document_state(
            1, DocumentStatus.PROCESSING, now, expected=DocumentStatus.PENDING
        )
    with pytest.raises(requests.exceptions.HTTPError):
        client.save_document_state(1, DocumentStatus.FAILED, now)


def test_transient_errors_are_retried(client, requests_mock, no_backoff):
    requests_mock.get(
        "http://docs.test/api/documents/4/",
        [
            {"exc": requests.exceptions.ConnectionError},
            {"json": {"id": 4, "status": "PENDING"}},
        ],
    )

    assert client.get_document(4).id == 4
    assert no_backoff.call_count == 1


def test_http_errors_are_not_retried(client, requests_mock, no_backoff):
    requests_mock.get("http://docs.test/api/documents/5/", status_code=404)

    with pytest.raises(requests.exceptions.HTTPError):
        client.get_document(5)

    assert requests_mock.call_count == 1
    no_backoff.assert_not_called()


def test_retries_give_up_after_max_retries(client, requests_mock, no_backoff):
    requests_mock.get(
        "http://docs.test/api/documents/6/", exc=requests.exceptions.ConnectTimeout
    )

    with pytest.raises(requests.exceptions.ConnectTimeout):
        client.get_document(6)

    assert requests_mock.call_count == 3
    assert no_backoff.call_count == 2
