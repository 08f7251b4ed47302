from types import SimpleNamespace
from unittest.mock import call

import pytest
import requests
from PIL import Image

from common.utils import _sleep_backoff, is_blank, retry


class FlakyClient:
    """Fails ``failures`` times with ``error`` before succeeding."""

    def __init__(self, max_retries: int, failures: int, error: Exception):
        self.settings = SimpleNamespace(
            MAX_RETRIES=max_retries, MAX_RETRY_BACKOFF_SECONDS=30
        )
        self.failures = failures
        self.error = error
        self.calls = 0

    @retry(retryable_exceptions=(requests.exceptions.ConnectionError,))
    def fetch(self, doc_id: int) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return f"document {doc_id}"


@pytest.fixture
def backoff(mocker):
    return mocker.patch("common.utils._sleep_backoff")


def test_retry_recovers_from_transient_errors(backoff):
    client = FlakyClient(3, failures=2, error=requests.exceptions.ConnectionError("reset"))

    assert client.fetch(7) == "document 7"
    assert client.calls == 3
    assert backoff.call_args_list == [call(1, client.settings), call(2, client.settings)]


def test_retry_reraises_last_error(backoff):
    client = FlakyClient(2, failures=5, error=requests.exceptions.ConnectionError("down"))

    with pytest.raises(requests.exceptions.ConnectionError, match="down"):
        client.fetch(1)

    assert client.calls == 2
    backoff.assert_called_once_with(1, client.settings)


def test_non_retryable_errors_propagate_immediately(backoff):
    client = FlakyClient(5, failures=1, error=KeyError("bad payload"))

    with pytest.raises(KeyError):
        client.fetch(1)

    assert client.calls == 1
    backoff.assert_not_called()


def test_retry_requires_at_least_one_attempt():
    client = FlakyClient(0, failures=0, error=requests.exceptions.ConnectionError())

    with pytest.raises(ValueError, match="MAX_RETRIES must be >= 1"):
        client.fetch(1)

    assert client.calls == 0


@pytest.mark.parametrize(
    "attempt, cap, expected",
    [(1, 30, 2.0), (2, 30, 4.0), (4, 30, 16.0), (6, 10, 10.0)],
)
def test_sleep_backoff_is_exponential_and_capped(mocker, attempt, cap, expected):
    settings = SimpleNamespace(MAX_RETRIES=8, MAX_RETRY_BACKOFF_SECONDS=cap)
    mocker.patch("common.utils.random.uniform", return_value=1.0)
    sleep_mock = mocker.patch("common.utils.time.sleep")

    _sleep_backoff(attempt, settings)

    sleep_mock.assert_called_once_with(expected)


def test_is_blank():
    page = Image.new("L", (10, 10), 255)
    assert is_blank(page)

    for x in range(5):
        page.putpixel((x, 0), 0)
    assert not is_blank(page)
    assert is_blank(page, threshold=6)
    assert not is_blank(Image.new("RGB", (10, 10), "navy"))
