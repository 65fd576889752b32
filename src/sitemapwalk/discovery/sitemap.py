"""Sitemap fetching and parsing.

This module fetches a single sitemap document, decompresses it when it is
gzipped, deserializes the XML into a plain tree and classifies it as a
``urlset`` (leaf), a ``sitemapindex`` (children) or an error.
"""

import asyncio
import gzip
import logging
from typing import Any
from xml.etree import ElementTree

import httpx

from sitemapwalk.cancellation import CancellationToken
from sitemapwalk.deadline import DeadlineRegistry, FireReason
from sitemapwalk.exceptions import AbortedError
from sitemapwalk.models import ChildIndex, ErrorKind, Leaf, NodeError, NodeOutcome

LOGGER = logging.getLogger(__name__)

# Elements always deserialized as lists, even when a document has only one
ALWAYS_LIST = frozenset({"sitemap", "url"})

GZIP_MAGIC = b"\x1f\x8b\x08"


def is_gzip(body: bytes) -> bool:
    """Check a response body for the gzip magic bytes."""
    return body[:3] == GZIP_MAGIC


async def decompress_response_body(body: bytes) -> bytes:
    """
    Decompress a gzipped response body off the event loop.

    Args:
        body: Gzipped bytes.

    Returns:
        Decompressed bytes.

    Raises:
        gzip.BadGzipFile: If the body is not valid gzip data.
        EOFError: If the gzip stream is truncated.
    """
    return await asyncio.to_thread(gzip.decompress, body)


def _strip_namespace(tag: str) -> str:
    """Remove XML namespace from tag name."""
    if tag.startswith("{"):
        return tag.split("}", 1)[1]
    return tag


def _element_value(element: ElementTree.Element) -> Any:
    """Convert an element to its text, or a dict of its children."""
    children = list(element)
    if not children:
        return (element.text or "").strip()

    value: dict[str, Any] = {}
    for child in children:
        name = _strip_namespace(child.tag)
        child_value = _element_value(child)
        if name in value:
            existing = value[name]
            if isinstance(existing, list):
                existing.append(child_value)
            else:
                value[name] = [existing, child_value]
        elif name in ALWAYS_LIST:
            value[name] = [child_value]
        else:
            value[name] = child_value
    return value


def deserialize(body: bytes | str) -> dict[str, Any]:
    """
    Deserialize a sitemap document into a plain tree.

    Namespace prefixes are stripped from element names, attributes are
    ignored, and ``sitemap``/``url`` elements are always lists.

    Args:
        body: XML document.

    Returns:
        Mapping of the root element name to its value.

    Raises:
        ElementTree.ParseError: If the document is not well-formed XML.
    """
    root = ElementTree.fromstring(body)
    return {_strip_namespace(root.tag): _element_value(root)}


def classify(tree: dict[str, Any]) -> NodeOutcome:
    """
    Classify a deserialized document.

    Args:
        tree: Output of ``deserialize``.

    Returns:
        Leaf for a urlset with ``url`` entries, ChildIndex for a sitemap
        index with ``sitemap`` entries, otherwise an UnknownStateError.
    """
    urlset = tree.get("urlset")
    if isinstance(urlset, dict) and urlset.get("url"):
        return Leaf(elements=list(urlset["url"]))

    index = tree.get("sitemapindex")
    if isinstance(index, dict) and index.get("sitemap"):
        child_urls: list[str] = []
        for entry in index["sitemap"]:
            loc = entry.get("loc") if isinstance(entry, dict) else entry
            if isinstance(loc, str) and loc:
                child_urls.append(loc)
        return ChildIndex(child_urls=child_urls)

    return NodeError(
        kind=ErrorKind.UNKNOWN_STATE.value,
        message="An unknown error occurred.",
        raw_cause=tree,
    )


class SitemapParser:
    """Fetch and parse single sitemap documents.

    Usage:
        async with httpx.AsyncClient() as client:
            parser = SitemapParser(client, DeadlineRegistry(timeout_ms=15000))
            request_id = parser.deadlines.next_id()
            try:
                outcome = await parser.parse_node(url, request_id=request_id)
            finally:
                parser.deadlines.clear(request_id)
    """

    def __init__(self, client: httpx.AsyncClient, deadlines: DeadlineRegistry):
        """Initialize sitemap parser.

        Args:
            client: HTTP client carrying headers, TLS and proxy settings
            deadlines: Registry arming a guard for every fetch
        """
        self._client = client
        self.deadlines = deadlines

    async def parse_node(
        self,
        url: str,
        token: CancellationToken | None = None,
        request_id: int | None = None,
    ) -> NodeOutcome:
        """Fetch one sitemap and classify it.

        The caller owns ``request_id`` and clears its guard once the returned
        awaitable settles.

        Args:
            url: Sitemap URL
            token: Cancellation token of the crawl
            request_id: Deadline registry ID for this fetch

        Returns:
            Leaf, ChildIndex or NodeError

        Raises:
            AbortedError: If the token is or becomes cancelled
        """
        if request_id is None:
            request_id = self.deadlines.next_id()
            try:
                return await self.parse_node(url, token, request_id)
            finally:
                self.deadlines.clear(request_id)

        if token is not None:
            token.raise_if_cancelled(url)

        fetch = asyncio.ensure_future(self._client.get(url))
        guard = self.deadlines.arm(request_id, url, fetch, token)

        try:
            response = await fetch
        except asyncio.CancelledError:
            task = asyncio.current_task()
            if guard.fired is None or (task is not None and task.cancelling()):
                raise
            if guard.fired is FireReason.ABORTED:
                raise AbortedError(url=url) from None
            return NodeError(
                kind=ErrorKind.TIMEOUT.value,
                message=f"Request timed out after {self.deadlines.timeout_ms} milliseconds for url: '{url}'",
                raw_cause={"url": url, "timeout": self.deadlines.timeout_ms},
            )
        except httpx.TimeoutException as e:
            return NodeError(
                kind=ErrorKind.TIMEOUT.value,
                message=f"Request timed out after {self.deadlines.timeout_ms} milliseconds for url: '{url}'",
                raw_cause=e,
            )
        except httpx.HTTPStatusError as e:
            return NodeError(kind=ErrorKind.HTTP.value, message=f"HTTP Error occurred: {e}", raw_cause=e)
        except Exception as e:
            return NodeError(kind=type(e).__name__, message=f"Error occurred: {type(e).__name__}", raw_cause=e)

        if response.status_code != 200:
            return NodeError(
                kind=ErrorKind.HTTP.value,
                message=f"HTTP Error occurred: Response code {response.status_code} ({response.reason_phrase})",
                raw_cause=response,
            )

        body = response.content
        try:
            if is_gzip(body):
                body = await decompress_response_body(body)
        except Exception as e:
            return NodeError(kind=type(e).__name__, message=f"Error occurred: {type(e).__name__}", raw_cause=e)

        if token is not None:
            token.raise_if_cancelled(url)

        try:
            tree = deserialize(body)
        except ElementTree.ParseError as e:
            return NodeError(kind=ErrorKind.PARSE.value, message=f"Error occurred: ParseError ({e})", raw_cause=e)

        return classify(tree)
