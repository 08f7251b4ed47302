"""
Daemon Loop Utilities
=====================

The processing daemon follows a simple control flow:

- Poll the document service for PENDING documents on an interval.
- Refresh shared, read-only state (the compiled rule snapshot) once per batch.
- Process the batch concurrently, one document per worker thread.
- Keep running until SIGINT / Ctrl-C.

A failure on one document is logged and never stops the loop; the per-document
processor has already recorded the FAILED state by the time it raises.
"""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Sequence, TypeVar

import structlog

log = structlog.get_logger(__name__)

T = TypeVar("T")


def process_batch(
    items: Sequence[T],
    process_item: Callable[[T], None],
    *,
    max_workers: int,
    daemon_name: str = "daemon",
) -> tuple[int, int]:
    """
    Run ``process_item`` over ``items`` in a thread pool.

    Returns ``(succeeded, failed)``. Item exceptions are logged, never raised.
    """
    succeeded = failed = 0
    with ThreadPoolExecutor(max_workers=max(1, int(max_workers))) as executor:
        pending = {executor.submit(process_item, item): item for item in items}
        for future in as_completed(pending):
            try:
                future.result()
            except Exception:
                failed += 1
                log.exception(
                    "Work item failed",
                    daemon=daemon_name,
                    item=_safe_item_summary(pending[future]),
                )
            else:
                succeeded += 1
    return succeeded, failed


def run_polling_threadpool(
    *,
    daemon_name: str,
    fetch_work: Callable[[], list[T]],
    process_item: Callable[[T], None],
    poll_interval_seconds: int,
    max_workers: int,
    before_each_batch: Callable[[list[T]], None] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """
    Poll for work forever and hand every batch to ``process_batch``.

    Args:
        daemon_name:
            Name used in log messages.
        fetch_work:
            Returns the next batch of work items.
        process_item:
            Processes a single work item. Exceptions are caught and logged.
        poll_interval_seconds:
            Pause after every poll, whether or not work was found.
        max_workers:
            ThreadPoolExecutor worker count.
        before_each_batch:
            Optional hook invoked once per non-empty batch (e.g. to refresh caches).
        sleep:
            Injectable sleep function (primarily for tests).
    """
    interval = max(1, int(poll_interval_seconds))
    workers = max(1, int(max_workers))
    idle_logged = False

    while True:
        try:
            items = fetch_work()
            if items:
                idle_logged = False
                if before_each_batch is not None:
                    before_each_batch(items)
                log.info(
                    "Processing batch",
                    daemon=daemon_name,
                    item_count=len(items),
                    max_workers=workers,
                )
                succeeded, failed = process_batch(
                    items, process_item, max_workers=workers, daemon_name=daemon_name
                )
                log.info(
                    "Batch finished",
                    daemon=daemon_name,
                    succeeded=succeeded,
                    failed=failed,
                )
            elif not idle_logged:
                log.info("No work found; waiting", daemon=daemon_name)
                idle_logged = True
            sleep(interval)
        except KeyboardInterrupt:
            log.info("Ctrl-C received; exiting", daemon=daemon_name)
            break
        except Exception:
            log.exception(
                "Unexpected error in daemon loop; sleeping",
                daemon=daemon_name,
                poll_interval_seconds=interval,
            )
            sleep(interval)


def _safe_item_summary(item: object) -> str:
    """Best-effort string for logging a work item."""
    try:
        doc_id = getattr(item, "id", None)
        if doc_id is None and isinstance(item, dict):
            doc_id = item.get("id")
        return f"doc_id={doc_id}" if doc_id is not None else str(item)
    except Exception:
        return "<unprintable>"
