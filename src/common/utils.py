"""
Utilities
=========

Small helpers shared by the service client and the OCR text extractor:

- a ``retry`` decorator with exponential backoff and jitter for transient
  network errors;
- ``is_blank`` to skip empty scanned pages before sending them to a model.
"""

import random
import time
from functools import wraps
from typing import Callable, Type, TypeVar

import structlog
from PIL import Image

log = structlog.get_logger(__name__)
T = TypeVar("T")


def retry(
    retryable_exceptions: tuple[Type[Exception], ...],
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Retry a method call on specific exceptions.

    The decorated method's instance must expose ``settings.MAX_RETRIES`` and
    ``settings.MAX_RETRY_BACKOFF_SECONDS``.
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(self, *args, **kwargs) -> T:
            settings = self.settings
            max_retries = settings.MAX_RETRIES
            if max_retries < 1:
                raise ValueError("MAX_RETRIES must be >= 1")
            for attempt in range(1, max_retries + 1):
                try:
                    return func(self, *args, **kwargs)
                except retryable_exceptions as e:
                    if attempt == max_retries:
                        log.error(
                            "Call failed after all attempts",
                            func=func.__name__,
                            attempts=attempt,
                            error=str(e),
                        )
                        raise
                    log.warning(
                        "Call failed; retrying",
                        func=func.__name__,
                        error=str(e),
                        attempt=attempt,
                        max_retries=max_retries,
                    )
                    _sleep_backoff(attempt, settings)
            raise RuntimeError("Retry loop exited unexpectedly.")

        return wrapper

    return decorator


def _sleep_backoff(attempt: int, settings) -> None:
    """Sleep with exponential backoff and jitter, capped by settings."""
    delay = min(
        (2**attempt) * random.uniform(0.8, 1.2),
        float(settings.MAX_RETRY_BACKOFF_SECONDS),
    )
    log.info(
        "Sleeping before retry",
        delay_seconds=round(delay, 1),
        attempt=attempt,
        max_retries=settings.MAX_RETRIES,
    )
    time.sleep(delay)


def is_blank(image: Image.Image, threshold: int = 5) -> bool:
    """
    Return True if the image is essentially blank (all white).
    """
    # Greyscale histogram - index 255 is pure white
    histogram = image.convert("L").histogram()
    return (sum(histogram) - histogram[255]) < threshold
