import logging
import random
import sqlite3
import time
from typing import Callable, Optional, Tuple, Type, TypeVar

from .. import config

T = TypeVar("T")


def backoff_delay(attempt: int,
                  base: float = config.RETRY_BASE_SECONDS,
                  max_s: float = config.RETRY_MAX_SECONDS) -> float:
    """Exponential delay for the given 0-based attempt, with a little jitter."""
    delay = min(max_s, base * (2 ** max(0, attempt)))
    return delay + (random.random() * 0.03)


def call_with_retry(fn: Callable[[], T],
                    description: str,
                    attempts: int = config.RETRY_ATTEMPTS,
                    retry_on: Tuple[Type[BaseException], ...] = (sqlite3.OperationalError,),
                    sleep: Optional[Callable[[float], None]] = None) -> T:
    """
    Runs `fn`, retrying transient store errors up to `attempts` extra times.
    The last error is re-raised unchanged.
    """
    for attempt in range(attempts + 1):
        try:
            return fn()
        except retry_on as e:
            if attempt >= attempts:
                raise
            delay = backoff_delay(attempt)
            logging.warning(f"{description} failed ({e}); retry {attempt + 1}/{attempts} in {delay:.2f}s")
            (sleep or time.sleep)(delay)
    raise AssertionError("unreachable")
