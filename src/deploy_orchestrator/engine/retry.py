"""Exponential backoff for retryable provider errors."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

from deploy_orchestrator.engine.errors import ExecutionCanceled, ProviderError

if TYPE_CHECKING:
    import threading
    from collections.abc import Callable

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How often, and how patiently, transient provider errors are retried.

    ``max_attempts`` counts the first call, so 1 disables retries.
    """

    max_attempts: int = 4
    base_delay: float = 0.5
    multiplier: float = 2.0
    max_delay: float = 30.0

    def delay(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number *attempt* (1-based)."""
        return min(self.max_delay, self.base_delay * self.multiplier ** (attempt - 1))

    def call(
        self,
        fn: Callable[[], T],
        *,
        canceled: threading.Event,
        label: str = "operation",
        on_attempt: Callable[[int], None] | None = None,
    ) -> T:
        """Run *fn*, retrying ``ProviderError(retryable=True)`` with backoff.

        Backoff waits on *canceled*; a cancellation during a wait raises
        :class:`ExecutionCanceled` instead of retrying.
        """
        attempt = 1
        while True:
            if on_attempt is not None:
                on_attempt(attempt)
            try:
                return fn()
            except ProviderError as exc:
                if not exc.retryable or attempt >= self.max_attempts:
                    raise
                wait = self.delay(attempt)
                logger.warning(
                    "%s failed (attempt %d/%d): %s; retrying in %.2fs",
                    label,
                    attempt,
                    self.max_attempts,
                    exc,
                    wait,
                )
                if canceled.wait(wait):
                    raise ExecutionCanceled(f"{label} canceled while waiting to retry") from exc
                attempt += 1
