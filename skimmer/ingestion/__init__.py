"""Feed ingestion - fetching and normalizing RSS/Atom feeds."""

from .interfaces import Feed, NormalizedItem, FetchResult, FetcherInterface
from .fetcher import FeedFetcher

__all__ = [
    "Feed", "NormalizedItem", "FetchResult",
    "FetcherInterface", "FeedFetcher"
]
