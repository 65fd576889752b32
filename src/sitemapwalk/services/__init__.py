"""Service layer for sitemapwalk.

- SitemapCrawler: Public entry point for crawling a sitemap tree
- CrawlEngine: Recursive per-node crawl with retries
- FanOutLimiter: Concurrency limit for an index's children
"""

from sitemapwalk.services.crawl import CrawlEngine, SitemapCrawler, merge_child_results
from sitemapwalk.services.limiter import FanOutLimiter

__all__ = [
    "CrawlEngine",
    "FanOutLimiter",
    "SitemapCrawler",
    "merge_child_results",
]
