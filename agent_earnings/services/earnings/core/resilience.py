"""
Timeout and bounded retry policy for collaborator calls, and the write
tokens that make retried conditional writes recognisable.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional, TypeVar

import structlog

from agent_earnings.core.config import EngineConfig
from agent_earnings.core.exceptions import CollaboratorTimeoutError, PersistenceError


logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Per-call timeout plus exponential backoff between attempts."""
    max_attempts: int = 3
    base_delay: float = 0.2
    timeout: float = 10.0

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(**EngineConfig.get_retry_config())

    def delay_for(self, attempt: int) -> float:
        return self.base_delay * (2 ** attempt)


async def call_with_retry(
    operation: str,
    func: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
) -> T:
    """
    Run func under the policy's timeout, retrying PersistenceError.

    Any other exception propagates immediately. After the last attempt the
    final PersistenceError (or CollaboratorTimeoutError) is raised.
    """
    last_error: PersistenceError = PersistenceError(f"{operation} was not attempted")

    for attempt in range(policy.max_attempts):
        try:
            return await asyncio.wait_for(func(), timeout=policy.timeout)
        except asyncio.TimeoutError:
            last_error = CollaboratorTimeoutError(operation, policy.timeout)
        except PersistenceError as e:
            last_error = e

        if attempt < policy.max_attempts - 1:
            wait_time = policy.delay_for(attempt)
            logger.warning(
                "Collaborator call failed, retrying",
                operation=operation,
                attempt=attempt + 1,
                max_attempts=policy.max_attempts,
                wait_seconds=wait_time,
                error=last_error.message
            )
            await asyncio.sleep(wait_time)

    logger.error(
        "Collaborator call failed after retries",
        operation=operation,
        attempts=policy.max_attempts,
        error=last_error.message
    )
    raise last_error


class WriteTokenClock:
    """
    UTC timestamps, strictly increasing per instance.

    A timestamp written by a conditional update doubles as that call's token:
    when a retry finds the row already changed, comparing the stored value with
    the token tells its own timed-out write apart from a concurrent one.
    """

    def __init__(self):
        self._last: Optional[datetime] = None

    def now(self) -> datetime:
        current = datetime.now(timezone.utc)
        if self._last is not None and current <= self._last:
            current = self._last + timedelta(microseconds=1)
        self._last = current
        return current
