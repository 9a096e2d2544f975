"""
Retry bookkeeping — repeat a failing call a bounded number of times.

Retries are immediate by default. A fixed ``delay`` can be set, but there
is no backoff: importers that want one do it themselves.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryState:
    """Attempts made so far for one unit of work."""

    name: str
    max_attempts: int = 1
    attempt: int = 0
    delay: float = 0.0
    last_error: str = ""

    @classmethod
    def for_retry_count(cls, name: str, retry_count: int, delay: float = 0.0) -> RetryState:
        """State allowing one call plus ``retry_count`` retries."""
        return cls(name=name, max_attempts=retry_count + 1, delay=delay)

    @property
    def exhausted(self) -> bool:
        """Whether all attempts have been used."""
        return self.attempt >= self.max_attempts

    def record_failure(self, error: str) -> None:
        self.last_error = error
        if not self.exhausted:
            logger.info(
                "%s: attempt %d/%d failed (%s), retrying",
                self.name,
                self.attempt,
                self.max_attempts,
                error,
            )


def call_with_retry(
    func: Callable[[int], T],
    state: RetryState,
    retryable: Callable[[Exception], bool] = lambda e: True,
) -> T:
    """Call ``func(attempt)`` until it succeeds or ``state`` is exhausted.

    Exceptions for which ``retryable`` is false are raised at once.
    ``BaseException``s that are not ``Exception``s (interrupts) are never
    caught.
    """
    while True:
        state.attempt += 1
        try:
            return func(state.attempt)
        except Exception as e:
            if not retryable(e):
                state.last_error = str(e)
                raise
            state.record_failure(str(e))
            if state.exhausted:
                raise
            if state.delay:
                time.sleep(state.delay)
