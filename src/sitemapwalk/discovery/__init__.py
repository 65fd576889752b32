"""Sitemap fetching, parsing and filtering."""

from sitemapwalk.discovery.filters import (
    FIELD_EXTRACTORS,
    is_excluded,
    is_modified_since,
    parse_lastmod,
    project_sites,
)
from sitemapwalk.discovery.sitemap import (
    SitemapParser,
    classify,
    decompress_response_body,
    deserialize,
    is_gzip,
)

__all__ = [
    # Filters
    "FIELD_EXTRACTORS",
    "is_excluded",
    "is_modified_since",
    "parse_lastmod",
    "project_sites",
    # Sitemap
    "SitemapParser",
    "classify",
    "decompress_response_body",
    "deserialize",
    "is_gzip",
]
