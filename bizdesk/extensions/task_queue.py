"""Lightweight IO task executor for offloading blocking calls."""
from __future__ import annotations

import logging
import os
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable

_logger = logging.getLogger(__name__)

_max_workers = int(os.getenv("TASK_QUEUE_MAX_WORKERS", "4") or 4)
_executor = ThreadPoolExecutor(max_workers=_max_workers, thread_name_prefix="bizdesk-io")


def submit_io_task(func: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
    """Submit a blocking IO call (profile fetch, insight request) to the shared executor.

    Failures are logged from the worker; callers that wait on the future still
    receive the exception from ``Future.result``.
    """

    future = _executor.submit(func, *args, **kwargs)

    def _log_outcome(fut: Future) -> None:
        if fut.cancelled():
            return
        exc = fut.exception()
        if exc:
            _logger.warning("Background task %s failed: %s", getattr(func, "__name__", func), exc)

    future.add_done_callback(_log_outcome)
    return future


def shutdown(wait: bool = False) -> None:
    _executor.shutdown(wait=wait)
