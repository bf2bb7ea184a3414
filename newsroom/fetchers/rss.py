from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, List, Optional

import feedparser
import requests
from dateutil import parser as date_parser
from dateutil import tz

from ..models import Source
from ..utils.clock import as_utc
from ..utils.logging import get_logger
from ..utils.retry import RetryPolicy, retry_call

logger = get_logger("newsroom.fetchers.rss")

_DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/127.0.0.0 Safari/537.36"
    ),
    "Accept": "application/rss+xml, application/xml, application/atom+xml, text/xml;q=0.9, */*;q=0.8",
}

_HTML_PREFIX_RE = re.compile(r"^\s*(<!doctype\s+html|<html)", re.IGNORECASE)
_FEED_START_RE = re.compile(r"<\?xml|<rss|<feed", re.IGNORECASE)
_IMG_SRC_RE = re.compile(r"<img[^>]+src=[\"']([^\"']+)[\"']", re.IGNORECASE)

# Abbreviations seen in South Asian feeds that dateutil does not know.
TZINFOS = {
    "IST": tz.gettz("Asia/Kolkata"),
    "SLST": tz.gettz("Asia/Colombo"),
    "GMT": timezone.utc,
    "UTC": timezone.utc,
}


class FeedError(Exception):
    """Base class for feed failures; ``reason`` is a short machine label."""

    reason = "fetch_error"


class FeedHttpError(FeedError):
    reason = "http_error"

    def __init__(self, status_code: int) -> None:
        super().__init__(f"Status code {status_code}")
        self.status_code = status_code


class FeedFormatError(FeedError):
    """The body is not a feed. ``reason`` is html_instead_of_xml or invalid_format."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


@dataclass(slots=True)
class FeedItem:
    title: str
    url: str
    guid: Optional[str] = None
    published_at: Optional[datetime] = None
    content: Optional[str] = None
    content_snippet: Optional[str] = None
    image_url: Optional[str] = None


def is_retryable_feed_error(exc: BaseException) -> bool:
    """Format problems and client errors other than 408/429 will not fix themselves."""
    if isinstance(exc, FeedFormatError):
        return False
    if isinstance(exc, FeedHttpError):
        return exc.status_code >= 500 or exc.status_code in (408, 429)
    return True


def prepare_feed_body(body: str) -> str:
    """Trim a response body down to the feed document or raise FeedFormatError."""
    text = (body or "").lstrip("\ufeff").strip()
    if _HTML_PREFIX_RE.match(text):
        raise FeedFormatError("html_instead_of_xml")
    match = _FEED_START_RE.search(text)
    if not match:
        raise FeedFormatError("invalid_format")
    return text[match.start():]


def _parse_datetime(entry: Any) -> Optional[datetime]:
    for key in ("published", "updated", "pubDate"):
        raw = entry.get(key)
        if not raw:
            continue
        try:
            parsed = date_parser.parse(raw, tzinfos=TZINFOS)
        except (ValueError, OverflowError):
            continue
        return as_utc(parsed)
    # feedparser may provide 'published_parsed' or 'updated_parsed' as UTC struct_time
    for key in ("published_parsed", "updated_parsed"):
        tm = entry.get(key)
        if tm:
            try:
                return datetime(*tm[:6], tzinfo=timezone.utc)
            except (TypeError, ValueError):
                return None
    return None


def _is_http(url: Optional[str]) -> bool:
    return bool(url) and url.lower().startswith("http")


def _extract_image(entry: Any, content: Optional[str]) -> Optional[str]:
    for media in entry.get("media_content") or []:
        if _is_http(media.get("url")):
            return media["url"]
    for thumb in entry.get("media_thumbnail") or []:
        if _is_http(thumb.get("url")):
            return thumb["url"]
    for enclosure in entry.get("enclosures") or []:
        if (enclosure.get("type") or "").startswith("image/") and _is_http(enclosure.get("href")):
            return enclosure["href"]
    if content:
        match = _IMG_SRC_RE.search(content)
        if match and _is_http(match.group(1)):
            return match.group(1)
    return None


def _entry_to_item(entry: Any) -> FeedItem:
    content_val = None
    contents = entry.get("content")
    if contents and isinstance(contents, list):
        content_val = contents[0].get("value")
    snippet = entry.get("summary") or entry.get("description")
    return FeedItem(
        title=(entry.get("title") or "").strip() or "Untitled",
        url=(entry.get("link") or "").strip(),
        guid=entry.get("id") or None,
        published_at=_parse_datetime(entry),
        content=content_val or snippet,
        content_snippet=snippet,
        image_url=_extract_image(entry, content_val or snippet),
    )


def parse_feed_body(body: str, *, limit: Optional[int] = None) -> List[FeedItem]:
    parsed = feedparser.parse(prepare_feed_body(body))
    if getattr(parsed, "bozo", False):
        # feedparser sets bozo when it encounters a feed error but may still parse entries
        logger.debug("Feed 'bozo' flagged: %s", getattr(parsed, "bozo_exception", None))
    entries = list(getattr(parsed, "entries", []) or [])
    if limit is not None:
        entries = entries[:limit]
    items = [_entry_to_item(e) for e in entries]
    return [i for i in items if _is_http(i.url)]


def _fetch_once(url: str, *, timeout: float, session: Optional[requests.Session]) -> str:
    getter = session.get if session is not None else requests.get
    resp = getter(url, headers=_DEFAULT_HEADERS, timeout=timeout)
    if not 200 <= resp.status_code < 300:
        raise FeedHttpError(resp.status_code)
    return resp.text


def fetch_feed(
    source: Source,
    *,
    timeout: float = 15.0,
    policy: RetryPolicy = RetryPolicy(attempts=3, base_delay=2.0),
    limit: Optional[int] = None,
    session: Optional[requests.Session] = None,
) -> List[FeedItem]:
    """Fetch and parse one RSS/Atom feed.

    The network request is done with ``requests`` to get consistent timeouts
    and headers; the body is checked for HTML error pages before it reaches
    ``feedparser``. Transient failures are retried per ``policy``.
    """
    logger.debug("Fetching RSS from %s", source.feed_url)
    body = retry_call(
        lambda: _fetch_once(source.feed_url, timeout=timeout, session=session),
        policy=policy,
        retryable=is_retryable_feed_error,
        label=f"feed {source.name}",
    )
    items = parse_feed_body(body, limit=limit)
    logger.info("Fetched %d RSS entries from %s", len(items), source.name)
    return items
