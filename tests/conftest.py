"""Pytest configuration and shared fixtures for sitemapwalk tests."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeAlias

import httpx
import pytest

SITEMAP_NS = "http://www.sitemaps.org/schemas/sitemap/0.9"


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Pure logic tests with no I/O, network, or browser")
    config.addinivalue_line("markers", "integration: Tests driving the crawler through a mock HTTP transport")
    config.addinivalue_line(
        "markers",
        "e2e: End-to-end tests with live network or external services",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """
    Apply default markers to tests without explicit markers.

    Tests should use explicit markers (@pytest.mark.unit, @pytest.mark.e2e).
    Unmarked tests default to unit.
    """
    for item in items:
        # Skip if already has a category marker
        markers = list(item.iter_markers())
        marker_names = [m.name for m in markers]
        if any(m in marker_names for m in ("unit", "integration", "e2e")):
            continue

        # Default unmarked tests to unit
        item.add_marker(pytest.mark.unit)


# Sitemap document builders


def urlset(*entries: str | dict[str, str]) -> str:
    """Build a urlset document from locs or element mappings."""
    urls = []
    for entry in entries:
        if isinstance(entry, str):
            entry = {"loc": entry}
        children = "".join(f"<{name}>{value}</{name}>" for name, value in entry.items())
        urls.append(f"<url>{children}</url>")
    return f'<?xml version="1.0" encoding="UTF-8"?><urlset xmlns="{SITEMAP_NS}">{"".join(urls)}</urlset>'


def sitemapindex(*locs: str) -> str:
    """Build a sitemap index document."""
    sitemaps = "".join(f"<sitemap><loc>{loc}</loc></sitemap>" for loc in locs)
    return f'<?xml version="1.0" encoding="UTF-8"?><sitemapindex xmlns="{SITEMAP_NS}">{sitemaps}</sitemapindex>'


Route: TypeAlias = str | bytes | int | Callable[[httpx.Request], Awaitable[httpx.Response]]


class FakeSitemapServer:
    """Routes requests by URL to canned responses and records every call.

    A route is a document (str or bytes, served with 200), a status code, or
    an async callable returning a response.
    """

    def __init__(self, routes: dict[str, Route] | None = None, delay: float = 0.0):
        self.routes: dict[str, Route] = dict(routes or {})
        self.delay = delay
        self.calls: list[str] = []
        self.requests: list[httpx.Request] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def handler(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.calls.append(url)
        self.requests.append(request)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            route = self.routes.get(url, 404)
            if callable(route):
                return await route(request)
            if isinstance(route, int):
                return httpx.Response(route, text="error")
            return httpx.Response(200, content=route.encode() if isinstance(route, str) else route)
        finally:
            self.in_flight -= 1

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def count(self, url: str) -> int:
        return self.calls.count(url)


@pytest.fixture
def server() -> FakeSitemapServer:
    """Empty fake sitemap server; add routes in the test."""
    return FakeSitemapServer()
