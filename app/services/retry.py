import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from app.errors import ErrorKind, ProviderError, is_transient_message

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, ProviderError):
        return exc.kind == ErrorKind.TRANSIENT
    return is_transient_message(str(exc))


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 1.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Await ``operation()`` retrying only transient connectivity failures.

    Makes at most ``max_retries + 1`` attempts, waiting
    ``base_delay * 2 ** attempt`` seconds after failed attempt ``attempt``.
    Any other error propagates immediately; after the last attempt the last
    error propagates.
    """
    if max_retries < 0:
        raise ValueError("max_retries must be >= 0")
    for attempt in range(max_retries + 1):
        try:
            return await operation()
        except Exception as e:
            if attempt == max_retries or not is_retryable(e):
                logger.warning(f"Attempt {attempt + 1}/{max_retries + 1} failed, giving up: {e}")
                raise
            delay = base_delay * (2 ** attempt)
            logger.info(f"Attempt {attempt + 1} failed, retrying in {delay}s: {e}")
            await sleep(delay)
