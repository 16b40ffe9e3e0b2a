"""
Helpers for the short transactions around settlement writes.

Each settlement step locks, writes and commits before the next provider
call; nothing holds a row lock across the network. When two requests for
the same order collide the database picks a deadlock victim, and
``retry_on_deadlock`` replays the losing block.
"""

import logging
import time
from functools import wraps

from django.db import OperationalError


logger = logging.getLogger(__name__)

# How each backend reports a lost lock race: MySQL 1213, PostgreSQL 40P01/40001, SQLite
DEADLOCK_MARKERS = ("deadlock", "1213", "could not serialize access", "database is locked")


class TransactionError(Exception):
    """A database error that retrying will not fix."""


class DeadlockError(TransactionError):
    """Lock contention outlasted every retry."""


def is_deadlock(error: Exception) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in DEADLOCK_MARKERS)


def retry_on_deadlock(max_retries=3, delay=0.1, backoff=2.0):
    """
    Re-run the wrapped function when it loses a lock race.

    Sleeps ``delay`` seconds before the first retry, multiplying by
    ``backoff`` each time. Gives up with DeadlockError after ``max_retries``
    retries. Any other OperationalError becomes TransactionError at once.
    """

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            wait = delay
            for attempt in range(1, max_retries + 2):
                try:
                    return func(*args, **kwargs)
                except OperationalError as e:
                    if not is_deadlock(e):
                        raise TransactionError(f"{func.__name__} failed: {e}") from e
                    if attempt > max_retries:
                        raise DeadlockError(f"{func.__name__} still deadlocked after {max_retries} retries: {e}") from e
                    logger.warning(f"{func.__name__} deadlocked, retry {attempt}/{max_retries} in {wait}s")
                    time.sleep(wait)
                    wait *= backoff

        return wrapper

    return decorator


def log_transaction_performance(func):
    """Log the duration of a transactional helper; failures log at ERROR and re-raise."""

    @wraps(func)
    def wrapper(*args, **kwargs):
        started = time.perf_counter()
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            logger.error(f"{func.__name__} failed after {time.perf_counter() - started:.3f}s: {e}")
            raise
        logger.debug(f"{func.__name__} committed in {time.perf_counter() - started:.3f}s")
        return result

    return wrapper
