"""Cooperative cancellation shared by every frame of a crawl.

A ``CancellationSource`` is owned by whoever started the crawl and is the only
object able to trigger cancellation. Crawl frames receive the read-only
``CancellationToken`` it hands out.

Usage:
    source = CancellationSource()
    crawler = SitemapCrawler(CrawlConfig(url="https://example.com/sitemap.xml"))
    task = asyncio.create_task(crawler.fetch(signal=source.token))
    ...
    source.cancel()  # task raises AbortedError
"""

import asyncio
import itertools
import logging
from typing import Callable, TypeAlias

from sitemapwalk.exceptions import AbortedError

LOGGER = logging.getLogger(__name__)

CancelCallback: TypeAlias = Callable[[], None]


class _CancellationState:
    """Write-once flag plus the callbacks waiting on it."""

    def __init__(self) -> None:
        self.cancelled = False
        self.reason: str | None = None
        self.callbacks: dict[int, CancelCallback] = {}
        self.handles = itertools.count()
        self.event: asyncio.Event | None = None

    def trigger(self, reason: str | None) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        self.reason = reason
        if self.event is not None:
            self.event.set()
        callbacks = list(self.callbacks.values())
        self.callbacks.clear()
        for callback in callbacks:
            try:
                callback()
            except Exception:
                LOGGER.exception("Cancellation callback failed")


class CancellationToken:
    """Read-only view of a cancellation source."""

    __slots__ = ("_state",)

    def __init__(self, state: _CancellationState) -> None:
        self._state = state

    @property
    def cancelled(self) -> bool:
        """True once the owning source has been triggered."""
        return self._state.cancelled

    @property
    def reason(self) -> str | None:
        return self._state.reason

    def raise_if_cancelled(self, url: str | None = None) -> None:
        """Raise ``AbortedError`` if cancellation has been requested."""
        if self._state.cancelled:
            raise AbortedError(url=url, context={"reason": self._state.reason} if self._state.reason else None)

    async def wait(self) -> None:
        """Suspend until cancellation is requested."""
        if self._state.cancelled:
            return
        if self._state.event is None:
            self._state.event = asyncio.Event()
        await self._state.event.wait()

    def add_callback(self, callback: CancelCallback) -> int | None:
        """
        Register a one-shot callback run when cancellation is triggered.

        Args:
            callback: Zero-argument callable.

        Returns:
            Handle for ``remove_callback``, or None when the token was already
            cancelled and the callback ran immediately.
        """
        if self._state.cancelled:
            callback()
            return None
        handle = next(self._state.handles)
        self._state.callbacks[handle] = callback
        return handle

    def remove_callback(self, handle: int | None) -> None:
        if handle is not None:
            self._state.callbacks.pop(handle, None)

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self._state.cancelled})"


class CancellationSource:
    """Owner side of a cancellation context."""

    def __init__(self) -> None:
        self._state = _CancellationState()
        self._token = CancellationToken(self._state)

    @property
    def token(self) -> CancellationToken:
        return self._token

    @property
    def cancelled(self) -> bool:
        return self._state.cancelled

    def cancel(self, reason: str | None = None) -> None:
        """
        Trigger cancellation. Only the first call has any effect.

        Args:
            reason: Optional human-readable reason, attached to raised errors.
        """
        if not self._state.cancelled:
            LOGGER.debug("Cancellation requested%s", f": {reason}" if reason else "")
        self._state.trigger(reason)
