"""
Transport retries for directory clients.

Only connection level failures are retried, and only inside a single page
request. Group resolution never retries a page that the directory answered.
"""

import time
import logging
from typing import Callable, Any, Dict, Tuple, Type, Optional

logger = logging.getLogger(__name__)

DEFAULT_RETRYABLE = (ConnectionError, TimeoutError)


class MaxRetriesExceeded(Exception):
    """Every attempt failed with a retryable error."""

    def __init__(self, attempts: int, last_exception: Exception):
        self.attempts = attempts
        self.last_exception = last_exception
        super().__init__(f"Failed after {attempts} attempts: {last_exception}")


def retry_call(
    func: Callable,
    args: tuple = (),
    kwargs: Optional[dict] = None,
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 1.0,
    exceptions: Tuple[Type[Exception], ...] = DEFAULT_RETRYABLE,
    on_retry: Optional[Callable[[int, Exception], None]] = None
) -> Any:
    """
    Call ``func(*args, **kwargs)`` until it succeeds or attempts run out.

    Exceptions outside ``exceptions`` propagate on the spot. ``on_retry`` is
    told the failed attempt number and error before each wait.

    Raises:
        MaxRetriesExceeded: If the final attempt also fails
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
    kwargs = kwargs or {}

    wait = delay
    attempt = 1
    while True:
        try:
            return func(*args, **kwargs)
        except exceptions as e:
            if attempt >= max_attempts:
                raise MaxRetriesExceeded(attempt, e) from e
            if on_retry:
                try:
                    on_retry(attempt, e)
                except Exception as callback_error:
                    logger.warning(f"Retry callback failed: {callback_error}")
            logger.debug(f"Waiting {wait:.1f}s before attempt {attempt + 1}")
            time.sleep(wait)
            wait *= backoff
            attempt += 1


def retry_settings(config: Dict[str, Any]) -> Dict[str, Any]:
    """Map an ``error_handling`` section onto retry_call keyword arguments."""
    return {
        'max_attempts': config.get('max_retries', 3) + 1,
        'delay': config.get('retry_wait_seconds', 1.0),
        'backoff': config.get('retry_backoff', 1.0),
    }


def create_retry_callback(operation_name: str) -> Callable[[int, Exception], None]:
    """Build an on_retry callback that logs a warning naming the operation."""
    def on_retry(attempt: int, exception: Exception):
        logger.warning(f"{operation_name} failed on attempt {attempt}, "
                       f"retrying due to {type(exception).__name__}: {exception}")

    return on_retry
