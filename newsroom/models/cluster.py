from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


class ClusterStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"


@dataclass(slots=True)
class Cluster:
    id: str
    headline: str
    status: ClusterStatus = ClusterStatus.DRAFT
    headline_si: Optional[str] = None
    headline_ta: Optional[str] = None
    slug: Optional[str] = None
    topic: Optional[str] = None
    topics: List[str] = field(default_factory=list)
    category: Optional[str] = None
    city: Optional[str] = None
    language: str = "en"
    source_count: int = 0
    article_count: int = 0
    first_seen_at: Optional[datetime] = None
    last_seen_at: Optional[datetime] = None
    published_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    image_url: Optional[str] = None
    meta_title_en: Optional[str] = None
    meta_description_en: Optional[str] = None
    meta_title_si: Optional[str] = None
    meta_description_si: Optional[str] = None
    meta_title_ta: Optional[str] = None
    meta_description_ta: Optional[str] = None
    keywords: List[str] = field(default_factory=list)
    updated_at: Optional[datetime] = None

    def headline_for(self, lang: str) -> str:
        if lang == "si" and self.headline_si:
            return self.headline_si
        if lang == "ta" and self.headline_ta:
            return self.headline_ta
        return self.headline


@dataclass(slots=True)
class Summary:
    cluster_id: str
    summary_en: Optional[str] = None
    summary_si: Optional[str] = None
    summary_ta: Optional[str] = None
    key_facts_en: List[str] = field(default_factory=list)
    key_facts_si: List[str] = field(default_factory=list)
    key_facts_ta: List[str] = field(default_factory=list)
    confirmed_vs_differs_en: Optional[str] = None
    confirmed_vs_differs_si: Optional[str] = None
    confirmed_vs_differs_ta: Optional[str] = None
    model: Optional[str] = None
    prompt_version: Optional[str] = None
    version: int = 0
    updated_at: Optional[datetime] = None

    def text_for(self, lang: str) -> Optional[str]:
        if lang == "si":
            return self.summary_si
        if lang == "ta":
            return self.summary_ta
        return self.summary_en
