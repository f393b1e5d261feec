# shopcore/utils/retry.py
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception

from shopcore.domain.errors import ShopError


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, ShopError) and exc.retryable


def transient_retry(attempts: int = 3):
    """Retry with backoff on retryable shop errors.

    Meant for callers at the edge (tasks, scripts); services never retry
    on their own.
    """
    return retry(
        reraise=True,
        stop=stop_after_attempt(attempts),
        wait=wait_exponential(multiplier=0.3, min=0.3, max=3),
        retry=retry_if_exception(_is_retryable),
    )
