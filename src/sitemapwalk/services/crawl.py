"""Crawl service for sitemap trees."""

import asyncio
import functools
import logging
import warnings
from collections.abc import Iterable
from typing import Any, Callable

import httpx

from sitemapwalk.cancellation import CancellationToken
from sitemapwalk.config import CrawlConfig
from sitemapwalk.deadline import DeadlineRegistry
from sitemapwalk.discovery.filters import is_excluded, project_sites
from sitemapwalk.discovery.sitemap import SitemapParser
from sitemapwalk.exceptions import AbortedError, ValidationError
from sitemapwalk.models import ChildIndex, CrawlResult, ErrorRecord, FetchResult, Leaf
from sitemapwalk.services.limiter import FanOutLimiter
from sitemapwalk.utils import log_with_correlation

LOGGER = logging.getLogger(__name__)


def merge_child_results(results: Iterable[CrawlResult]) -> CrawlResult:
    """Merge the results of an index's children, in dispatch order.

    A child contributes its sites when it has no errors, and its errors
    otherwise. A failed child never carries sites, so nothing is lost.

    Args:
        results: Child results in the order the children were dispatched

    Returns:
        Merged CrawlResult
    """
    merged = CrawlResult()
    for result in results:
        if result.errors:
            merged.errors.extend(result.errors)
        else:
            merged.sites.extend(result.sites)
    return merged


class CrawlEngine:
    """Recursive walk over one sitemap tree.

    One engine serves one ``fetch`` call: it shares the HTTP client and the
    deadline registry across every recursion frame.
    """

    def __init__(self, config: CrawlConfig, parser: SitemapParser):
        self.config = config
        self._parser = parser
        self._deadlines = parser.deadlines
        # debug=True promotes progress messages to INFO
        self._progress_level = logging.INFO if config.debug else logging.DEBUG

    async def crawl(
        self,
        url: str,
        retry_index: int = 0,
        token: CancellationToken | None = None,
    ) -> CrawlResult:
        """Crawl a sitemap and everything below it.

        Args:
            url: Sitemap URL
            retry_index: Retries already spent on this URL
            token: Cancellation token of the crawl

        Returns:
            CrawlResult with either sites or exactly one error for a single
            node, or the merged results of an index's children

        Raises:
            AbortedError: If the crawl is cancelled
        """
        request_id = self._deadlines.next_id()
        try:
            outcome = await self._parser.parse_node(url, token, request_id)
        finally:
            self._deadlines.clear(request_id)

        if isinstance(outcome, Leaf):
            LOGGER.log(self._progress_level, "Urlset found during crawl('%s')", url)
            fields = self.config.selected_fields if self.config.fields else None
            sites = project_sites(
                outcome.elements,
                url,
                min_lastmod=self.config.lastmod,
                exclusions=self.config.exclusions,
                fields=fields,
            )
            return CrawlResult(sites=sites, errors=[])

        if isinstance(outcome, ChildIndex):
            LOGGER.log(self._progress_level, "Additional sitemap found during crawl('%s')", url)
            return await self._crawl_children(outcome.child_urls, token)

        if retry_index < self.config.retries:
            if token is not None:
                token.raise_if_cancelled(url)
            LOGGER.log(
                self._progress_level,
                "(Retry attempt: %d / %d) %s due to %s on previous request",
                retry_index + 1,
                self.config.retries,
                url,
                outcome.kind,
            )
            return await self.crawl(url, retry_index + 1, token)

        log_with_correlation(
            LOGGER,
            logging.WARNING,
            f"Error occurred during crawl('{url}'): {outcome.message}",
            url=url,
            kind=outcome.kind,
            retries=retry_index,
        )
        return CrawlResult.failure(
            ErrorRecord(kind=outcome.kind, message=outcome.message, url=url, retries=retry_index)
        )

    async def _crawl_children(
        self,
        child_urls: list[str],
        token: CancellationToken | None,
    ) -> CrawlResult:
        """Crawl an index's children under a limiter local to this index."""
        children = [child for child in child_urls if not is_excluded(child, self.config.exclusions)]
        limiter = FanOutLimiter(self.config.concurrency, token)

        results = await asyncio.gather(
            *[limiter.run(functools.partial(self.crawl, child, 0, token), url=child) for child in children],
            return_exceptions=True,
        )

        failures = [result for result in results if isinstance(result, BaseException)]
        if failures:
            aborted = next((failure for failure in failures if isinstance(failure, AbortedError)), None)
            raise aborted or failures[0]

        return merge_child_results(results)  # type: ignore[arg-type]


class SitemapCrawler:
    """Discover every URL reachable from a sitemap.

    Usage:
        crawler = SitemapCrawler(CrawlConfig(url="https://example.com/sitemap.xml", retries=1))
        result = await crawler.fetch()
        for site in result.sites:
            print(site)
        for error in result.errors:
            print(error.url, error.kind)

    With cancellation:
        source = CancellationSource()
        task = asyncio.create_task(crawler.fetch(signal=source.token))
        source.cancel()
        await task  # raises AbortedError
    """

    def __init__(
        self,
        config: CrawlConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        **options: Any,
    ):
        """Initialize sitemap crawler.

        Args:
            config: Crawl configuration. Built from ``options`` when omitted.
            transport: Optional httpx transport (e.g. ``httpx.MockTransport``)
            **options: CrawlConfig fields, used when ``config`` is None
        """
        if config is not None and options:
            raise ValidationError("Pass either a CrawlConfig or keyword options, not both")
        self.config = config or CrawlConfig(**options)
        self._transport = transport

    async def fetch(
        self,
        url: str | None = None,
        signal: CancellationToken | None = None,
    ) -> FetchResult:
        """Crawl a sitemap tree and return every site found.

        Failures below the root are reported in ``errors``; the call itself
        only fails when the crawl is cancelled.

        Args:
            url: Sitemap URL (defaults to the configured ``url``)
            signal: Cancellation token, overriding the configured one

        Returns:
            FetchResult with the requested URL, sites and errors

        Raises:
            AbortedError: If the token is cancelled before or during the crawl
            ValidationError: If no URL was given or configured
        """
        url = url or self.config.url
        token = signal or self.config.signal

        if token is not None and token.cancelled:
            raise AbortedError(url=url)
        if not url:
            raise ValidationError("No sitemap URL given", field="url")

        if self.config.lastmod:
            LOGGER.debug("Using minimum lastmod value of %s", self.config.lastmod)

        try:
            async with self._build_client() as client:
                engine = CrawlEngine(self.config, SitemapParser(client, DeadlineRegistry(self.config.timeout)))
                result = await engine.crawl(url, 0, token)
            return FetchResult(url=url, sites=result.sites, errors=result.errors)
        except AbortedError:
            raise
        except Exception as e:
            LOGGER.error("Crawl of %s failed: %s", url, e, exc_info=True)

        return FetchResult(url=url, sites=[], errors=[])

    async def get_sites(
        self,
        url: str | None = None,
        callback: Callable[[BaseException | None, list], Any] | None = None,
    ) -> Any:
        """Crawl a sitemap and hand the sites to a callback.

        Deprecated: use ``fetch()``.

        Args:
            url: Sitemap URL (defaults to the configured ``url``)
            callback: Called as ``callback(error, sites)``

        Returns:
            Whatever the callback returns, or the sites when no callback is given
        """
        warnings.warn(
            "get_sites() is deprecated, please use fetch()",
            DeprecationWarning,
            stacklevel=2,
        )
        error: BaseException | None = None
        sites: list = []
        try:
            sites = (await self.fetch(url)).sites
        except Exception as e:
            error = e
        if callback is None:
            return sites
        return callback(error, sites)

    def _build_client(self) -> httpx.AsyncClient:
        """Create the HTTP client shared by every request of one crawl."""
        return httpx.AsyncClient(
            headers=self.config.request_headers,
            verify=self.config.reject_unauthorized,
            proxy=self.config.proxy,
            transport=self._transport,
            follow_redirects=True,
            # Request deadlines are enforced by DeadlineGuard
            timeout=None,
        )
