"""Error handling and retry utilities."""
import asyncio
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Awaitable, Callable, Optional, TypeVar

from fastapi import status

if TYPE_CHECKING:
    from image_sync.models import SyncLogEntry


class AppError(Exception):
    """Base exception for application errors."""
    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class ConfigurationError(AppError):
    """Sync folder missing or not configured."""
    def __init__(self, message: str):
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class LocalIOError(AppError):
    """A local file primitive failed."""
    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        super().__init__(message, status.HTTP_500_INTERNAL_SERVER_ERROR)


class RemoteError(AppError):
    """The remote catalog rejected a request or could not be reached."""
    def __init__(
        self,
        message: str,
        remote_status: Optional[int] = None,
        detail: Optional[str] = None,
        status_code: int = status.HTTP_502_BAD_GATEWAY,
    ):
        self.remote_status = remote_status
        self.detail = detail
        super().__init__(message, status_code)


class ThrottledError(RemoteError):
    """Remote catalog throttling errors."""
    def __init__(self, message: str, retry_after: int):
        self.retry_after = retry_after
        super().__init__(
            message,
            remote_status=status.HTTP_429_TOO_MANY_REQUESTS,
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        )


class SyncInProgressError(AppError):
    """A pass is already running for this local/remote pair."""
    def __init__(self, message: str = "A sync pass is already in progress"):
        super().__init__(message, status.HTTP_409_CONFLICT)


class SyncFailedError(AppError):
    """A whole pass failed; the failed log entry has already been written."""
    def __init__(self, message: str, entry: "SyncLogEntry"):
        self.entry = entry
        super().__init__(message, status.HTTP_502_BAD_GATEWAY)


T = TypeVar("T")


async def with_retry(
    func: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    backoff_factor: float = 2.0,
    retry_on: tuple = (ThrottledError,),
) -> T:
    """
    Retry a function with exponential backoff.

    Args:
        func: Async function to retry
        max_attempts: Maximum number of attempts
        initial_delay: Initial delay between retries in seconds
        max_delay: Maximum delay between retries in seconds
        backoff_factor: Multiplier for delay after each attempt
        retry_on: Tuple of exceptions to retry on

    Returns:
        Result of the function call

    Raises:
        Last exception encountered if all retries fail
    """
    attempt = 0
    delay = initial_delay

    while True:
        try:
            return await func()
        except retry_on as e:
            attempt += 1
            if attempt >= max_attempts:
                raise

            # For throttling errors, use the server's retry-after if provided
            if isinstance(e, ThrottledError):
                wait = min(e.retry_after, max_delay)
            else:
                wait = delay
                delay = min(delay * backoff_factor, max_delay)

            await asyncio.sleep(wait)


def get_retry_after(headers) -> Optional[int]:
    """
    Extract Retry-After value from response headers.

    Args:
        headers: Response headers

    Returns:
        Seconds to wait before retry, or None if not found
    """
    retry_after = headers.get("Retry-After")
    if not retry_after:
        return None

    try:
        return max(0, int(retry_after))
    except ValueError:
        try:
            retry_date = datetime.strptime(
                retry_after, "%a, %d %b %Y %H:%M:%S GMT"
            ).replace(tzinfo=timezone.utc)
            return max(0, int((retry_date - datetime.now(timezone.utc)).total_seconds()))
        except ValueError:
            return None
