"""Feed fetching layer: single RSS/Atom fetches and the concurrent pool."""

from .pool import FeedPool, SourceFetchResult, url_in_domain
from .rss import FeedError, FeedFormatError, FeedHttpError, FeedItem, fetch_feed

__all__ = [
    "FeedPool",
    "SourceFetchResult",
    "url_in_domain",
    "FeedError",
    "FeedFormatError",
    "FeedHttpError",
    "FeedItem",
    "fetch_feed",
]
