from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

from ..fetchers.rss import FeedItem
from ..models import NewArticle, Source
from ..storage.store import NewsStore
from ..storage.transactions import TransactionManager
from ..utils.logging import get_logger
from .normalize import clean_html_to_text, detect_language, make_excerpt, normalize_plain_text

logger = get_logger("newsroom.processors.dedup")


def make_article_hash(url: str, guid: Optional[str], title: str) -> str:
    """Identity of an article: md5 of ``url|guid|title`` (guid empty when absent)."""
    key = f"{url or ''}|{guid or ''}|{title or ''}"
    return hashlib.md5(key.encode("utf-8")).hexdigest()


def build_new_article(source: Source, item: FeedItem) -> Optional[NewArticle]:
    """Normalize a feed item into an insertable row; ``None`` when it has no URL."""
    url = (item.url or "").strip()
    if not url:
        return None
    title = normalize_plain_text(item.title) or "Untitled"
    text = normalize_plain_text(clean_html_to_text(item.content or item.content_snippet))
    lang = detect_language(f"{title} {text}")
    if lang == "unk":
        lang = source.language
    return NewArticle(
        source_id=source.id,
        title=title,
        url=url,
        hash=make_article_hash(url, item.guid, item.title.strip()),
        guid=item.guid,
        content_excerpt=make_excerpt(item.content_snippet or item.content) or None,
        content_text=text or None,
        image_url=item.image_url,
        published_at=item.published_at,
        lang=lang,
    )


@dataclass(slots=True)
class InsertStats:
    received: int = 0
    inserted: int = 0
    deduplicated: int = 0
    invalid: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)


class ArticleInserter:
    """Insert fetched items, skipping anything whose hash is already stored.

    Existing hashes are filtered in one read first; the insert itself still
    uses ``ON CONFLICT DO NOTHING`` so a concurrent writer can never produce a
    duplicate row or an error.
    """

    def __init__(self, store: NewsStore, transactions: TransactionManager) -> None:
        self.store = store
        self.tx = transactions

    def insert(self, items: Iterable[Tuple[Source, FeedItem]]) -> InsertStats:
        stats = InsertStats()
        candidates: List[NewArticle] = []
        seen: set[str] = set()
        for source, item in items:
            stats.received += 1
            row = build_new_article(source, item)
            if row is None:
                stats.invalid += 1
                continue
            if row.hash in seen:
                stats.deduplicated += 1
                continue
            seen.add(row.hash)
            candidates.append(row)

        existing = self.store.existing_hashes(r.hash for r in candidates)
        fresh = [r for r in candidates if r.hash not in existing]
        stats.deduplicated += len(candidates) - len(fresh)
        if not fresh:
            logger.info("No new articles to insert (received=%d)", stats.received)
            return stats

        result = self.tx.run_batches(fresh, self._insert_chunk, label="insert_articles")
        stats.inserted = result.applied
        stats.failed = result.failed
        stats.errors.extend(result.errors)
        # Rows lost to ON CONFLICT were inserted by someone else in the meantime
        stats.deduplicated += len(fresh) - result.applied - result.failed
        logger.info(
            "Inserted %d new article(s); deduplicated=%d invalid=%d failed=%d",
            stats.inserted,
            stats.deduplicated,
            stats.invalid,
            stats.failed,
        )
        return stats

    def _insert_chunk(self, conn, chunk: Sequence[NewArticle]) -> int:
        return self.store.insert_new_articles(conn, chunk)
