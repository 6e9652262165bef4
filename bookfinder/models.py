"""Data models for catalog records, search results and fetch outcomes."""
from dataclasses import dataclass
from typing import Optional, Tuple, Union


@dataclass(frozen=True)
class CatalogItem:
    """Raw catalog record as returned by the search endpoint."""
    key: Optional[str] = None
    title: Optional[str] = None
    author_name: Tuple[str, ...] = ()
    first_publish_year: Optional[int] = None
    cover_i: Optional[int] = None


@dataclass(frozen=True)
class ResultItem:
    """Normalized, display-ready search result."""
    key: Optional[str]
    title: str
    authors: str
    year: Optional[int]
    cover_url: Optional[str]
    work_url: Optional[str]

    @property
    def has_cover(self) -> bool:
        return self.cover_url is not None


@dataclass(frozen=True)
class RequestFailed:
    """A search request that did not produce a usable response.

    ``status`` is the HTTP status code, or ``None`` when the body could
    not be parsed or no response was received at all.
    """
    status: Optional[int] = None

    @property
    def message(self) -> str:
        if self.status is not None:
            return f"Request failed: {self.status}"
        return "Something went wrong. Please try again."


@dataclass(frozen=True)
class NetworkUnavailable(RequestFailed):
    """The request never reached the server (DNS, refused connection, timeout)."""

    @property
    def message(self) -> str:
        return "Network unavailable. Please try again."


@dataclass(frozen=True)
class FetchSuccess:
    items: Tuple[CatalogItem, ...]
    truncated: bool = False


@dataclass(frozen=True)
class FetchFailure:
    error: RequestFailed


@dataclass(frozen=True)
class FetchCancelled:
    """The request was superseded or cleared before it could be delivered."""


FetchOutcome = Union[FetchSuccess, FetchFailure, FetchCancelled]
