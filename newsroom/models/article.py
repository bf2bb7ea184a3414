from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class ArticleStatus(str, Enum):
    NEW = "new"
    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"


# Allowed forward moves; anything else is rejected at the storage layer.
STATUS_TRANSITIONS: dict[ArticleStatus, tuple[ArticleStatus, ...]] = {
    ArticleStatus.NEW: (ArticleStatus.PROCESSING,),
    ArticleStatus.PROCESSING: (ArticleStatus.PROCESSED, ArticleStatus.FAILED),
    ArticleStatus.PROCESSED: (),
    ArticleStatus.FAILED: (),
}


@dataclass(slots=True)
class NewArticle:
    """Row about to be inserted by the dedup inserter."""

    source_id: str
    title: str
    url: str
    hash: str
    guid: Optional[str] = None
    content_excerpt: Optional[str] = None
    content_text: Optional[str] = None
    image_url: Optional[str] = None
    published_at: Optional[datetime] = None
    lang: str = "en"


@dataclass(slots=True)
class Article:
    id: str
    source_id: str
    title: str
    url: str
    hash: str
    status: ArticleStatus
    guid: Optional[str] = None
    content_excerpt: Optional[str] = None
    content_text: Optional[str] = None
    image_url: Optional[str] = None
    published_at: Optional[datetime] = None
    lang: str = "en"
    cluster_id: Optional[str] = None
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    processed_at: Optional[datetime] = None

    @property
    def text(self) -> str:
        return self.content_excerpt or self.content_text or self.title or ""
