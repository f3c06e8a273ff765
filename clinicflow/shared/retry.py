"""
Bounded exponential backoff for DependencyError.

Only DependencyError is retried; every other domain error surfaces on the first
attempt. Each attempt re-enters the decorated operation from the top, so it
starts with a fresh read and its state guards reject work that a previous
attempt already applied.

The backoff sleeps in the calling thread; the routers declare plain `def`
endpoints so FastAPI runs them in its threadpool, off the event loop.
"""

import functools
import logging
import time

from ..config import DEPENDENCY_RETRY_ATTEMPTS, DEPENDENCY_RETRY_BASE_DELAY
from ..errors import DependencyError

logger = logging.getLogger(__name__)


def retry_on_dependency_error(
    attempts: int = DEPENDENCY_RETRY_ATTEMPTS,
    base_delay: float = DEPENDENCY_RETRY_BASE_DELAY,
    sleep=time.sleep,
):
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            for attempt in range(1, attempts + 1):
                try:
                    return func(*args, **kwargs)
                except DependencyError as e:
                    if attempt >= attempts:
                        logger.error(
                            f"❌ {func.__qualname__} failed after {attempts} attempts: {e.message}"
                        )
                        raise
                    delay = base_delay * (2 ** (attempt - 1))
                    logger.warning(
                        f"⚠️ {func.__qualname__} attempt {attempt}/{attempts} hit "
                        f"'{e.message}', retrying in {delay:.2f}s"
                    )
                    sleep(delay)

        return wrapper

    return decorator
