"""Allow running sitemapwalk as ``python -m sitemapwalk``."""

from sitemapwalk.cli import app

if __name__ == "__main__":
    app()
