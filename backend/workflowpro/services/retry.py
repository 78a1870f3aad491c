"""Bounded exponential-backoff retry for database units of work."""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

from sqlalchemy import exc as sa_exc

from ..domain_errors import DatabaseUnavailable, DomainError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryableConflict(Exception):
    """Lost a race that rerunning the whole unit of work resolves (e.g. an id clash)."""


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff with additive jitter.

    Delay before retry n (0 = first retry) is
    min(base_delay * multiplier ** n, max_delay) + uniform(0, max_jitter).
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_jitter: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 60.0
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, compare=False)
    jitter: Callable[[float, float], float] = field(default=random.uniform, compare=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_jitter < 0 or self.max_delay < 0:
            raise ValueError("retry delays must not be negative")
        if self.multiplier < 1:
            raise ValueError("multiplier must be at least 1")

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.DB_RETRY_MAX_ATTEMPTS,
            base_delay=settings.DB_RETRY_BASE_DELAY_SECONDS,
            max_jitter=settings.DB_RETRY_MAX_JITTER_SECONDS,
        )

    def next_delay(self, attempt: int) -> float:
        """Pause before retry number `attempt` (zero-based)."""
        backoff = min(self.base_delay * (self.multiplier ** attempt), self.max_delay)
        return backoff + self.jitter(0.0, self.max_jitter)

    def should_retry(self, attempt: int, error: BaseException) -> bool:
        """`attempt` is the number of attempts made so far."""
        return attempt < self.max_attempts and is_transient_error(error)


def is_transient_error(exc: BaseException) -> bool:
    """Errors that may succeed when the whole unit of work is rerun."""
    # Imported here: database.py imports this module.
    from ..database import ConnectionUnavailable, PoolExhausted

    if isinstance(exc, DomainError):
        return False
    if isinstance(exc, (ConnectionUnavailable, PoolExhausted, RetryableConflict, sa_exc.TimeoutError)):
        return True
    if isinstance(exc, (TimeoutError, asyncio.TimeoutError)):
        return True
    if isinstance(exc, (sa_exc.OperationalError, sa_exc.InterfaceError)):
        return True
    if isinstance(exc, sa_exc.DBAPIError) and exc.connection_invalidated:
        return True
    return False


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy,
    label: str,
) -> T:
    """Run `operation` up to `policy.max_attempts` times.

    Non-transient errors (domain errors included) propagate on first
    occurrence. When every attempt fails transiently the last error is chained
    to a DatabaseUnavailable tagged with the label and attempt count.
    """
    last_error: BaseException | None = None

    for attempt in range(1, policy.max_attempts + 1):
        try:
            result = await operation()
        except Exception as exc:
            if not is_transient_error(exc):
                raise
            last_error = exc
            logger.warning(
                "%s failed (attempt %d/%d): %s",
                label,
                attempt,
                policy.max_attempts,
                exc.__class__.__name__,
            )
            if not policy.should_retry(attempt, exc):
                break
            delay = policy.next_delay(attempt - 1)
            logger.info("Retrying %s in %.0fms", label, delay * 1000)
            await policy.sleep(delay)
            continue

        if attempt > 1:
            logger.info("%s succeeded on attempt %d", label, attempt)
        return result

    logger.error("%s failed after %d attempts", label, policy.max_attempts)
    raise DatabaseUnavailable(
        code="DATABASE_UNAVAILABLE",
        message=f"{label} failed after {policy.max_attempts} attempts",
        details={"operation": label, "attempts": policy.max_attempts},
    ) from last_error
