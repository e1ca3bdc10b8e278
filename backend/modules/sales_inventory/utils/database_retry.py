# backend/modules/sales_inventory/utils/database_retry.py

import asyncio
import logging
import random
from typing import Awaitable, Callable, Set, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Error codes and messages that signal a transient lock conflict
RETRY_ERROR_CODES: Set[str] = {
    # PostgreSQL
    "40001",  # serialization_failure
    "40P01",  # deadlock_detected
    "55P03",  # lock_not_available
    # SQLite
    "database is locked",
    "database table is locked",
}


def is_retryable_error(error: Exception) -> bool:
    """
    Check whether a database error is a lock, deadlock or serialization
    conflict that may succeed when the transaction is replayed.
    """
    if not isinstance(error, (OperationalError, DBAPIError)):
        return False

    error_str = str(error).lower()
    if any(token in error_str for token in ("deadlock", "serialization", "locked")):
        return True

    orig = getattr(error, "orig", None)
    pgcode = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if pgcode:
        return pgcode in RETRY_ERROR_CODES

    args = getattr(orig, "args", None)
    if args:
        return any(code in str(args[0]) for code in RETRY_ERROR_CODES)

    return False


async def retry_on_deadlock(
    func: Callable[..., Awaitable[T]],
    *args,
    max_retries: int = 3,
    initial_delay: float = 0.05,
    max_delay: float = 2.0,
    backoff_factor: float = 2.0,
    jitter: bool = True,
    **kwargs,
) -> T:
    """
    Run func, replaying it with exponential backoff on retryable errors.

    func must own its transaction (open and close its session) so a replay
    starts from a clean state. Non-retryable errors propagate immediately;
    the last retryable error propagates once retries are exhausted.
    """
    delay = initial_delay

    for attempt in range(max_retries + 1):
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            if not is_retryable_error(e) or attempt == max_retries:
                raise

            actual_delay = min(delay, max_delay)
            if jitter:
                actual_delay *= 1 + random.random() * 0.25

            logger.warning(
                f"Database lock conflict on attempt {attempt + 1}/{max_retries + 1}. "
                f"Retrying in {actual_delay:.3f}s. Error: {str(e)}"
            )

            await asyncio.sleep(actual_delay)
            delay *= backoff_factor

    raise RuntimeError("unreachable")
