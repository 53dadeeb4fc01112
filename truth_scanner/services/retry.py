"""Bounded retry with backoff for remote calls."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Tuple, Type, TypeVar

from truth_scanner.config import RETRY_BACKOFF, RETRY_BASE_DELAY_SECONDS, RETRY_MAX_RETRIES
from truth_scanner.domain.exceptions import TransientAnalysisError

logger = logging.getLogger(__name__)

T = TypeVar("T")
Sleep = Callable[[float], Awaitable[None]]

BACKOFF_MODES = ("constant", "linear", "exponential")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry ``retry_on`` failures up to ``max_retries`` times.

    ``delay_for(n)`` is the pause before retry ``n`` (1-based): ``base_delay``
    for constant, ``base_delay * n`` for linear and ``base_delay * 2**(n-1)``
    for exponential backoff.
    """

    max_retries: int = RETRY_MAX_RETRIES
    base_delay: float = RETRY_BASE_DELAY_SECONDS
    backoff: str = RETRY_BACKOFF
    retry_on: Tuple[Type[BaseException], ...] = (TransientAnalysisError,)

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_delay < 0:
            raise ValueError("base_delay must be >= 0")
        if self.backoff not in BACKOFF_MODES:
            raise ValueError(f"backoff must be one of {', '.join(BACKOFF_MODES)}")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, retry_number: int) -> float:
        if self.backoff == "constant":
            return self.base_delay
        if self.backoff == "linear":
            return self.base_delay * retry_number
        return self.base_delay * 2 ** (retry_number - 1)

    async def run(self, operation: Callable[[], Awaitable[T]], sleep: Sleep = asyncio.sleep) -> T:
        """Await ``operation`` until it succeeds or attempts run out.

        The last retryable exception is re-raised once the bound is reached;
        anything not in ``retry_on`` propagates on first occurrence.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                return await operation()
            except self.retry_on as exc:
                if attempt >= self.max_attempts:
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    "Attempt %d/%d failed (%s); retrying in %.1fs", attempt, self.max_attempts, exc, delay,
                )
                await sleep(delay)
