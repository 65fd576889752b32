"""Data models for sitemapwalk."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeAlias

from pydantic import BaseModel, ConfigDict, Field

# A site is either a bare URL or a mapping of selected field names to values.
SiteEntry: TypeAlias = str | dict[str, Any]


class ErrorKind(str, Enum):
    """Failure categories a sitemap node can report.

    Any other failure is reported with the class name of the underlying
    exception (e.g. ``ConnectError``).
    """

    TIMEOUT = "TimeoutError"
    HTTP = "HTTPError"
    PARSE = "ParseError"
    UNKNOWN_STATE = "UnknownStateError"


# =============================================================================
# Public results
# =============================================================================


class ErrorRecord(BaseModel):
    """A sitemap that permanently failed after exhausting its retries."""

    model_config = ConfigDict(frozen=True)

    kind: str
    message: str
    url: str
    retries: int = Field(default=0, ge=0)


class FetchResult(BaseModel):
    """Result of crawling a sitemap tree.

    A call that returns a FetchResult has succeeded even when ``errors`` is
    not empty: callers must check ``errors`` to detect partial failure.
    """

    url: str
    sites: list[str | dict[str, Any]] = Field(default_factory=list)
    errors: list[ErrorRecord] = Field(default_factory=list)


# =============================================================================
# Internal crawl state
# =============================================================================


@dataclass
class CrawlResult:
    """Sites and errors collected for one node and everything below it."""

    sites: list[SiteEntry] = field(default_factory=list)
    errors: list[ErrorRecord] = field(default_factory=list)

    @classmethod
    def failure(cls, record: ErrorRecord) -> "CrawlResult":
        return cls(sites=[], errors=[record])


@dataclass(frozen=True)
class Leaf:
    """A ``urlset`` document: raw ``url`` elements in document order."""

    elements: list[dict[str, Any]]


@dataclass(frozen=True)
class ChildIndex:
    """A ``sitemapindex`` document: child sitemap URLs in document order."""

    child_urls: list[str]


@dataclass(frozen=True)
class NodeError:
    """A failed fetch or a document of unrecognised shape."""

    kind: str
    message: str
    raw_cause: Any = None


NodeOutcome: TypeAlias = Leaf | ChildIndex | NodeError
