"""Concurrency limit for the children of one sitemap index."""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from sitemapwalk.cancellation import CancellationToken

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class FanOutLimiter:
    """Admit at most ``concurrency`` child crawls at once, first come first served.

    A limiter is created per sitemap index, so the bound applies to that
    index's direct children only. Nested indexes get their own limiter.

    Usage:
        limiter = FanOutLimiter(concurrency=10, token=token)
        results = await asyncio.gather(*[limiter.run(lambda u=u: crawl(u)) for u in urls])
    """

    def __init__(self, concurrency: int, token: CancellationToken | None = None):
        """Initialize limiter.

        Args:
            concurrency: Maximum children in flight (at least 1)
            token: Cancellation token; no child is started once it fires
        """
        self._concurrency = max(1, concurrency)
        self._semaphore = asyncio.Semaphore(self._concurrency)
        self._token = token
        self.in_flight = 0

    @property
    def concurrency(self) -> int:
        return self._concurrency

    async def run(self, start: Callable[[], Awaitable[T]], url: str | None = None) -> T:
        """Wait for a free slot, then start and await a child crawl.

        Args:
            start: Zero-argument callable creating the child awaitable
            url: Child URL, attached to AbortedError

        Returns:
            Result of the child crawl

        Raises:
            AbortedError: If the token fired before the child was admitted
        """
        async with self._semaphore:
            if self._token is not None:
                self._token.raise_if_cancelled(url)
            self.in_flight += 1
            try:
                return await start()
            finally:
                self.in_flight -= 1
