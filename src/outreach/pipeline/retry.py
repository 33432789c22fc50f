"""Retry policy with exponential backoff for draft generation."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from ..constants import (
    DEFAULT_GENERATION_MAX_RETRIES,
    DEFAULT_GENERATION_RETRY_BASE_DELAY_SECONDS,
)

logger = logging.getLogger(__name__)


@dataclass
class RetryPolicy:
    """Bounded retry with exponential backoff.

    An operation is attempted ``1 + max_retries`` times. Before retry
    ``n`` (0-based) the policy waits ``base_delay_seconds * 2**n``. There
    is no wait after the final attempt.

    Attributes:
        max_retries: Extra attempts after the first one.
        base_delay_seconds: Delay before the first retry.
        sleep: Awaitable sleep function, replaceable with a fake clock.
    """

    max_retries: int = DEFAULT_GENERATION_MAX_RETRIES
    base_delay_seconds: float = DEFAULT_GENERATION_RETRY_BASE_DELAY_SECONDS
    sleep: Callable[[float], Awaitable[Any]] = field(default=asyncio.sleep, repr=False)

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_delay_seconds < 0:
            raise ValueError("base_delay_seconds must be >= 0")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt ``attempt`` (0-based)."""
        return self.base_delay_seconds * (2 ** attempt)

    async def run(
        self,
        operation: Callable[[], Awaitable[Any]],
        is_success: Callable[[Any], bool],
        error_of: Callable[[Any], Optional[str]],
    ) -> tuple[Any, Optional[str], int]:
        """Run ``operation`` until it succeeds or attempts are exhausted.

        A raised exception counts as a failed attempt with ``str(exc)`` as
        its error.

        Args:
            operation: Zero-argument coroutine factory.
            is_success: Predicate on the operation's result.
            error_of: Extracts an error message from a failed result.

        Returns:
            Tuple of (last result or None, last error or None, attempts made).
        """
        last_result: Any = None
        last_error: Optional[str] = None

        for attempt in range(self.max_attempts):
            try:
                last_result = await operation()
            except Exception as e:
                last_result = None
                last_error = str(e) or type(e).__name__
            else:
                if is_success(last_result):
                    return last_result, None, attempt + 1
                last_error = error_of(last_result)

            if attempt < self.max_retries:
                delay = self.delay_for(attempt)
                logger.warning(
                    "Attempt %d/%d failed (%s), retrying in %.1fs",
                    attempt + 1,
                    self.max_attempts,
                    last_error,
                    delay,
                )
                await self.sleep(delay)

        return last_result, last_error, self.max_attempts
