import asyncio
import logging
from typing import Optional

import httpx

from .models.events import EventSource

logger = logging.getLogger(__name__)


class CollectorError(Exception):
    """Base exception for upstream feed errors raised inside collectors"""
    def __init__(self, message: str, source: Optional[EventSource] = None, recoverable: bool = True):
        self.message = message
        self.source = source
        self.recoverable = recoverable
        super().__init__(message)


class RetryableError(CollectorError):
    """Error that should trigger retry logic"""
    pass


class NonRetryableError(CollectorError):
    """Error that should not be retried"""
    def __init__(self, message: str, source: Optional[EventSource] = None):
        super().__init__(message, source, recoverable=False)


async def retry_with_backoff(
    func,
    max_retries: int = 3,
    base_delay: float = 1.0,
    backoff_factor: float = 2.0,
    max_delay: float = 30.0,
    exceptions: tuple = (Exception,)
):
    """Retry function with exponential backoff"""
    name = getattr(func, "__name__", repr(func))
    for attempt in range(max_retries + 1):
        try:
            return await func()
        except exceptions as e:
            if isinstance(e, NonRetryableError):
                logger.error(f"Non-retryable error in {name}: {e}")
                raise

            if attempt == max_retries:
                logger.error(f"Max retries ({max_retries}) exceeded for {name}: {e}")
                raise

            delay = min(base_delay * (backoff_factor ** attempt), max_delay)
            logger.warning(f"Attempt {attempt + 1} failed for {name}: {e}. Retrying in {delay:.1f}s")
            await asyncio.sleep(delay)


def classify_http_error(error: Exception, source: EventSource, feed: str) -> CollectorError:
    """Map an httpx exception onto the retryable/non-retryable split"""
    if isinstance(error, httpx.TimeoutException):
        return RetryableError(f"{feed} timeout: {error}", source)
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        if status >= 500:
            return RetryableError(f"{feed} server error ({status})", source)
        if status == 429:
            return NonRetryableError(f"{feed} rate limit exceeded", source)
        if status in (401, 403):
            return NonRetryableError(f"{feed} authentication failed ({status})", source)
        return NonRetryableError(f"{feed} client error ({status})", source)
    if isinstance(error, httpx.TransportError):
        return RetryableError(f"{feed} transport error: {error}", source)
    return NonRetryableError(f"{feed} unexpected error: {error}", source)
