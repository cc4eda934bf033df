import functools
import time

from src.utils.logging import get_logger

logger = get_logger(__name__)

MAX_RETRY_DELAY_SECONDS = 300


class RateLimitedError(Exception):
    """Exception to indicate a function was rate limited."""

    def __init__(self, retry_after: int | None = None, message: str = "Rate limited"):
        self.retry_after = retry_after
        super().__init__(message)


def _retry_delay(e: RateLimitedError, attempt: int, max_retries: int, base_delay: int, func_name: str):
    """Delay before the next attempt, or re-raise once retries are exhausted."""
    if attempt >= max_retries - 1:
        logger.error(f"Max retries reached for {func_name}")
        raise e

    # Server-provided retry_after wins over exponential backoff
    delay = e.retry_after if e.retry_after else base_delay * (2**attempt)
    delay = min(delay, MAX_RETRY_DELAY_SECONDS)
    delay_source = "server says" if e.retry_after else "calculated delay"

    logger.warning(
        f"Rate limited, {delay_source} wait {delay} seconds before retry {attempt + 1}/{max_retries}"
    )
    return delay


def rate_limited(max_retries=5, base_delay=5):
    """
    Decorator adding exponential backoff retries to a function that raises RateLimitedError.

    Usage:
        @rate_limited()
        def api_call():
            response = session.post(...)
            if response.status_code == 429:
                raise RateLimitedError(retry_after=int(response.headers["Retry-After"]))
            return response.json()
    """

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            for attempt in range(max_retries):
                try:
                    return func(*args, **kwargs)
                except RateLimitedError as e:
                    time.sleep(_retry_delay(e, attempt, max_retries, base_delay, func.__name__))

            raise RuntimeError(f"Unexpected error in retry logic for {func.__name__}")

        return wrapper

    return decorator
