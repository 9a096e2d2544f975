"""
Bounded worker pool — run independent units with at most N in flight.

Units are submitted lazily, so that stopping (first failure, cancel,
Ctrl-C) leaves the rest unscheduled. Results are handed to ``on_result``
on the calling thread only: workers never touch shared state.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Callable, Iterable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


def run_bounded(
    items: Iterable[T],
    func: Callable[[T], R],
    parallelism: int,
    on_result: Callable[[T, R], bool],
    cancel_event: threading.Event | None = None,
    thread_name_prefix: str = "orchard",
) -> bool:
    """Run ``func`` over ``items`` with ``parallelism`` workers.

    ``on_result(item, result)`` returns True to stop submitting new units.
    Units already running always complete and are reported.

    Returns:
        True when the run was interrupted, by ``cancel_event`` or by a
        KeyboardInterrupt (which sets ``cancel_event`` so that workers
        can notice it).
    """
    cancel_event = cancel_event or threading.Event()
    pending = deque(items)
    in_flight: dict[Future, T] = {}
    stop = False
    interrupted = False

    executor = ThreadPoolExecutor(max_workers=parallelism, thread_name_prefix=thread_name_prefix)
    try:
        try:
            while pending or in_flight:
                while pending and not stop and not cancel_event.is_set() and len(in_flight) < parallelism:
                    item = pending.popleft()
                    in_flight[executor.submit(func, item)] = item
                if not in_flight:
                    break
                done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
                for future in done:
                    item = in_flight.pop(future)
                    if on_result(item, future.result()):
                        stop = True
        except KeyboardInterrupt:
            logger.warning("interrupted, waiting for %d running unit(s) to finish", len(in_flight))
            cancel_event.set()
            interrupted = True
            for future in list(in_flight):
                item = in_flight.pop(future)
                on_result(item, future.result())
    finally:
        executor.shutdown(wait=True, cancel_futures=True)

    if pending and cancel_event.is_set():
        interrupted = True
    return interrupted
