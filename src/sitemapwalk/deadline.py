"""Per-request deadlines for sitemap fetches.

Each dispatched fetch gets its own ``DeadlineGuard``, registered under a
request ID that is unique for the lifetime of the registry. Two in-flight
fetches never share a guard, even when they target the same URL.
"""

import asyncio
import itertools
import logging
from enum import Enum

from sitemapwalk.cancellation import CancellationToken

LOGGER = logging.getLogger(__name__)


class FireReason(str, Enum):
    """Why a guard cancelled its fetch."""

    TIMEOUT = "timeout"
    ABORTED = "aborted"


class DeadlineGuard:
    """Cancels one in-flight fetch on timeout or on crawl cancellation."""

    def __init__(
        self,
        request_id: int,
        url: str,
        fetch: asyncio.Future,
        timeout_ms: int,
        token: CancellationToken | None = None,
    ) -> None:
        self.request_id = request_id
        self.url = url
        self.timeout_ms = timeout_ms
        self.fired: FireReason | None = None
        self._fetch = fetch
        self._token = token
        self._timer: asyncio.TimerHandle | None = None
        self._callback_handle: int | None = None

    def arm(self) -> None:
        """Start the timer and subscribe to the cancellation token."""
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.timeout_ms / 1000, self._fire, FireReason.TIMEOUT)
        if self._token is not None:
            # Fires immediately when the token is already cancelled
            self._callback_handle = self._token.add_callback(lambda: self._fire(FireReason.ABORTED))

    def clear(self) -> None:
        """Stop the timer and drop the token subscription."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._token is not None:
            self._token.remove_callback(self._callback_handle)
            self._callback_handle = None

    @property
    def active(self) -> bool:
        return self._timer is not None

    def _fire(self, reason: FireReason) -> None:
        if self.fired is not None:
            return
        self.fired = reason
        self.clear()
        if not self._fetch.done():
            LOGGER.debug("Cancelling request #%d for %s (%s)", self.request_id, self.url, reason.value)
            self._fetch.cancel()


class DeadlineRegistry:
    """Guards for every outstanding fetch of one crawl, keyed by request ID."""

    def __init__(self, timeout_ms: int) -> None:
        self.timeout_ms = timeout_ms
        self._guards: dict[int, DeadlineGuard] = {}
        self._ids = itertools.count(1)

    def next_id(self) -> int:
        return next(self._ids)

    def arm(
        self,
        request_id: int,
        url: str,
        fetch: asyncio.Future,
        token: CancellationToken | None = None,
    ) -> DeadlineGuard:
        """
        Create, register and arm a guard for a fetch.

        Args:
            request_id: ID from ``next_id()``.
            url: URL being fetched, for logging.
            fetch: Future to cancel when the guard fires.
            token: Optional crawl cancellation token.

        Returns:
            The armed guard.
        """
        guard = DeadlineGuard(request_id, url, fetch, self.timeout_ms, token)
        self._guards[request_id] = guard
        guard.arm()
        return guard

    def clear(self, request_id: int) -> None:
        """Disarm and forget a guard. Unknown IDs are ignored."""
        guard = self._guards.pop(request_id, None)
        if guard is not None:
            guard.clear()

    def __len__(self) -> int:
        return len(self._guards)

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._guards
