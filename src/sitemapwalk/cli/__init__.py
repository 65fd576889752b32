"""Command-line interface for sitemapwalk.

- fetch: Crawl a sitemap tree and print the URLs it lists
"""

# Import command modules to register them with the app
from sitemapwalk.cli import fetch  # noqa: F401
from sitemapwalk.cli._common import app

__all__ = ["app"]
