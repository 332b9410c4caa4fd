"""Batching, pagination and polling helpers."""

from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, TypeVar

from tenacity import AsyncRetrying, RetryError, retry_if_result, stop_after_attempt, wait_fixed

from directus_migration.client.exceptions import ReadinessTimeoutError
from directus_migration.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

PageFetcher = Callable[[int, int], Awaitable[list[dict[str, Any]]]]


def chunk_list(items: list[T], size: int) -> list[list[T]]:
    """Split a list into consecutive chunks of at most ``size`` items.

    Examples:
        >>> chunk_list([1, 2, 3, 4, 5], 2)
        [[1, 2], [3, 4], [5]]
    """
    if size < 1:
        raise ValueError("Chunk size must be at least 1")
    return [items[i : i + size] for i in range(0, len(items), size)]


async def paginate(fetch_page: PageFetcher, page_size: int) -> AsyncIterator[list[dict[str, Any]]]:
    """Yield pages from a page-numbered source, strictly one after another.

    Page N+1 is only requested after page N has been received. Iteration
    stops at the first empty page or at the first page shorter than
    ``page_size``.

    Args:
        fetch_page: Coroutine function called as ``fetch_page(page, limit)``;
            pages are numbered from 1
        page_size: Number of records requested per page

    Yields:
        Non-empty lists of records
    """
    page = 1
    while True:
        items = await fetch_page(page, page_size)
        if not items:
            break

        yield items

        if len(items) < page_size:
            break
        page += 1


async def wait_for(
    check: Callable[[], Awaitable[bool]],
    interval: float = 2.0,
    max_attempts: int = 30,
    error_message: str = "Operation timed out",
) -> bool:
    """Poll ``check`` at a fixed interval until it returns true.

    Exceptions raised by ``check`` are not retried and propagate as-is.

    Args:
        check: Coroutine function returning whether the condition holds
        interval: Seconds to wait between attempts
        max_attempts: Attempts before giving up
        error_message: Message of the timeout error

    Returns:
        True once the condition holds

    Raises:
        ReadinessTimeoutError: If the condition never held within max_attempts
    """
    try:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(max_attempts),
            wait=wait_fixed(interval),
            retry=retry_if_result(lambda ready: not ready),
        ):
            with attempt:
                ready = await check()
                if not ready:
                    logger.debug(
                        "wait_for_condition_pending",
                        attempt=attempt.retry_state.attempt_number,
                        max_attempts=max_attempts,
                    )
            if not attempt.retry_state.outcome.failed:
                attempt.retry_state.set_result(ready)
    except RetryError as e:
        raise ReadinessTimeoutError(error_message) from e

    return True
