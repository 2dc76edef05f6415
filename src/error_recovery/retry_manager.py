"""
Retry bookkeeping with exponential backoff, keyed by (client, category)
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Optional, Tuple

from .models import ErrorCategory

logger = logging.getLogger(__name__)

RetryKey = Tuple[str, ErrorCategory]


@dataclass
class RetryAttempt:
    """Attempts made since the first failure of the current retry sequence"""
    attempts: int = 0
    first_attempt_at: float = field(default_factory=time.monotonic)


class RetryManager:
    """Tracks retry attempts and computes backoff delays"""

    def __init__(
        self,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.sleep = sleep
        self.monotonic = monotonic
        self.attempts: Dict[RetryKey, RetryAttempt] = {}

    def next_delay(
        self,
        client_id: str,
        category: ErrorCategory,
        max_retries: int,
        base_delay: float,
    ) -> Optional[float]:
        """
        Reserve the next attempt for a (client, category) pair.

        Returns the backoff delay ``base_delay * 2 ** attempts_so_far`` or None
        when the retry budget is spent, in which case the counter is dropped.
        Check and increment happen without yielding to the event loop.
        """
        key = (client_id, category)
        entry = self.attempts.get(key)
        attempts_so_far = entry.attempts if entry else 0

        if attempts_so_far >= max_retries:
            self.attempts.pop(key, None)
            logger.error(f"Max retries exceeded for {category.value} (client {client_id})")
            return None

        if entry is None:
            entry = RetryAttempt(first_attempt_at=self.monotonic())
            self.attempts[key] = entry
        entry.attempts = attempts_so_far + 1

        delay = base_delay * (2 ** attempts_so_far)
        logger.warning(
            f"Retrying {category.value} operation for {client_id} "
            f"(attempt {entry.attempts}/{max_retries}) after {delay:.3f}s"
        )
        return delay

    async def wait(self, client_id: str, category: ErrorCategory, delay: float) -> None:
        """Backoff sleep; a cancelled wait drops the pending counter"""
        try:
            await self.sleep(delay)
        except asyncio.CancelledError:
            self.clear(client_id, category)
            logger.debug(f"Retry for {category.value} (client {client_id}) cancelled during backoff")
            raise

    def clear(self, client_id: str, category: ErrorCategory) -> None:
        self.attempts.pop((client_id, category), None)

    def get_attempts(self, client_id: str, category: ErrorCategory) -> int:
        entry = self.attempts.get((client_id, category))
        return entry.attempts if entry else 0

    def expire_stale(self, max_age_seconds: float) -> int:
        """Drop counters whose retry sequence started more than max_age_seconds ago"""
        cutoff = self.monotonic() - max_age_seconds
        stale = [key for key, entry in self.attempts.items() if entry.first_attempt_at <= cutoff]
        for key in stale:
            del self.attempts[key]
        if stale:
            logger.debug(f"Expired {len(stale)} stale retry counters")
        return len(stale)

    @property
    def active_retries(self) -> int:
        return len(self.attempts)

    def reset(self) -> None:
        self.attempts.clear()
