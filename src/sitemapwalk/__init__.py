"""Recursive sitemap crawler.

Walks a sitemap or sitemap index over HTTP and returns every page URL it
lists, with per-sitemap errors reported alongside the results.
"""

from sitemapwalk.cancellation import CancellationSource, CancellationToken
from sitemapwalk.config import CrawlConfig
from sitemapwalk.exceptions import AbortedError, ConfigurationError, SitemapwalkError, ValidationError
from sitemapwalk.models import ErrorKind, ErrorRecord, FetchResult
from sitemapwalk.services.crawl import SitemapCrawler

__version__ = "0.1.0"

__all__ = [
    "AbortedError",
    "CancellationSource",
    "CancellationToken",
    "ConfigurationError",
    "CrawlConfig",
    "ErrorKind",
    "ErrorRecord",
    "FetchResult",
    "SitemapCrawler",
    "SitemapwalkError",
    "ValidationError",
    "__version__",
]
