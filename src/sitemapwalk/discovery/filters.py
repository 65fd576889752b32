"""Filtering and field projection for sitemap ``url`` entries.

Everything here is a pure function of its arguments: running the same
projection twice over the same elements yields the same sites.
"""

import logging
import re
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from typing import Any, Callable, TypeAlias

LOGGER = logging.getLogger(__name__)

# Formats tried after datetime.fromisoformat() gives up
LASTMOD_FORMATS = [
    "%Y-%m-%dT%H:%M:%S%z",  # Offset without colon, e.g. +0000
    "%Y-%m-%dT%H:%M:%S.%f%z",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m",
    "%Y",
]


def is_excluded(url: str | None, patterns: Sequence[re.Pattern[str]]) -> bool:
    """
    Check whether a URL matches any exclusion pattern.

    Args:
        url: URL to check. Missing URLs are never excluded.
        patterns: Compiled patterns, searched anywhere in the URL.

    Returns:
        True if the URL should be skipped.
    """
    if not patterns or url is None:
        return False
    return any(pattern.search(url) for pattern in patterns)


def parse_lastmod(value: Any) -> float | None:
    """
    Parse a W3C datetime ``lastmod`` value to epoch milliseconds.

    Values without a timezone are read as UTC.

    Args:
        value: Text of the ``lastmod`` element.

    Returns:
        Milliseconds since the epoch, or None when the value cannot be parsed.
    """
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()

    parsed: datetime | None = None
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        for fmt in LASTMOD_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue

    if parsed is None:
        LOGGER.debug("Could not parse lastmod: %s", text)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp() * 1000


def is_modified_since(element: dict[str, Any], min_lastmod: float) -> bool:
    """
    Apply the ``lastmod`` floor to one ``url`` element.

    Args:
        element: Deserialized ``url`` element.
        min_lastmod: Epoch-millisecond floor; 0 disables the check.

    Returns:
        True if the element passes. With a floor set, elements without a
        parseable ``lastmod`` fail.
    """
    if not min_lastmod:
        return True
    modified = parse_lastmod(element.get("lastmod"))
    if modified is None:
        return False
    return modified >= min_lastmod


# Field projection


def _text(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip()
    return value


def _priority(value: Any) -> Any:
    try:
        return float(value)
    except (TypeError, ValueError):
        return _text(value)


FieldExtractor: TypeAlias = Callable[[dict[str, Any], str], Any]

# Supported field names and how each is read from a ``url`` element.
# ``sitemap`` is the URL of the sitemap the entry was listed in.
FIELD_EXTRACTORS: dict[str, FieldExtractor] = {
    "loc": lambda element, _: _text(element.get("loc")),
    "lastmod": lambda element, _: _text(element.get("lastmod")),
    "changefreq": lambda element, _: _text(element.get("changefreq")),
    "priority": lambda element, _: _priority(element["priority"]) if "priority" in element else None,
    "image": lambda element, _: element.get("image"),
    "video": lambda element, _: element.get("video"),
    "news": lambda element, _: element.get("news"),
    "sitemap": lambda _, sitemap_url: sitemap_url,
}


def project_site(
    element: dict[str, Any],
    sitemap_url: str,
    fields: Sequence[str] | None,
) -> str | dict[str, Any]:
    """
    Turn a ``url`` element into a site entry.

    Args:
        element: Deserialized ``url`` element.
        sitemap_url: URL of the sitemap the element came from.
        fields: Field names to project, or None for a bare URL string.

    Returns:
        The ``loc`` string, or a mapping that always holds ``loc`` plus every
        requested field present on the element.
    """
    loc = FIELD_EXTRACTORS["loc"](element, sitemap_url)
    if fields is None:
        return loc

    site: dict[str, Any] = {"loc": loc}
    for name in fields:
        if name == "loc":
            continue
        value = FIELD_EXTRACTORS[name](element, sitemap_url)
        if value is not None and value != "":
            site[name] = value
    return site


def project_sites(
    elements: Iterable[dict[str, Any]],
    sitemap_url: str,
    *,
    min_lastmod: float = 0,
    exclusions: Sequence[re.Pattern[str]] = (),
    fields: Sequence[str] | None = None,
) -> list[str | dict[str, Any]]:
    """
    Filter and project the ``url`` elements of one urlset.

    Args:
        elements: Deserialized ``url`` elements in document order.
        sitemap_url: URL of the urlset.
        min_lastmod: Epoch-millisecond ``lastmod`` floor; 0 disables it.
        exclusions: Patterns matched against ``loc``.
        fields: Field names to project, or None for bare URL strings.

    Returns:
        Site entries in document order. Entries without a ``loc`` are
        skipped.
    """
    sites: list[str | dict[str, Any]] = []
    for element in elements:
        if not isinstance(element, dict):
            # <url>https://...</url> without child elements
            element = {"loc": element}
        loc = _text(element.get("loc"))
        if not isinstance(loc, str) or not loc:
            LOGGER.debug("Skipping url entry without loc in %s", sitemap_url)
            continue
        if not is_modified_since(element, min_lastmod):
            continue
        if is_excluded(loc, exclusions):
            continue
        sites.append(project_site(element, sitemap_url, fields))
    return sites
