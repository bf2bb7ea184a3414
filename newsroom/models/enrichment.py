from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

TASK_OK = "ok"
TASK_FAILED = "failed"
TASK_SKIPPED = "skipped"


@dataclass(slots=True)
class TaskOutcome:
    task: str
    status: str
    duration_ms: float = 0.0
    error: Optional[str] = None


@dataclass(slots=True)
class EnrichmentDraft:
    """Everything the enrichment tasks produced for one cluster.

    Fields left as ``None`` (or empty) were not produced in this pass and
    are not written, so a partial draft never erases earlier results.
    """

    cluster_id: str
    category: Optional[str] = None
    category_fallback: bool = False
    topics: List[str] = field(default_factory=list)
    city: Optional[str] = None
    keywords: List[str] = field(default_factory=list)

    summary_en: Optional[str] = None
    summary_model: Optional[str] = None
    prompt_version: Optional[str] = None

    headline_si: Optional[str] = None
    headline_ta: Optional[str] = None
    summary_si: Optional[str] = None
    summary_ta: Optional[str] = None

    key_facts_en: List[str] = field(default_factory=list)
    key_facts_si: List[str] = field(default_factory=list)
    key_facts_ta: List[str] = field(default_factory=list)
    confirmed_vs_differs_en: Optional[str] = None
    confirmed_vs_differs_si: Optional[str] = None
    confirmed_vs_differs_ta: Optional[str] = None

    meta_title_en: Optional[str] = None
    meta_description_en: Optional[str] = None
    meta_title_si: Optional[str] = None
    meta_description_si: Optional[str] = None
    meta_title_ta: Optional[str] = None
    meta_description_ta: Optional[str] = None
    slug: Optional[str] = None

    image_url: Optional[str] = None
    published_at: Optional[datetime] = None

    outcomes: Dict[str, TaskOutcome] = field(default_factory=dict)
