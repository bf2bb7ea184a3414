"""The five per-cluster enrichment tasks.

Each task reads a :class:`ClusterWork` and writes what it produced into the
work item's :class:`EnrichmentDraft`. A task raises :class:`TaskSkipped` when
it has nothing to do (missing input, or output already current); any other
exception is a failure. Tasks with a documented fallback store the fallback
in the draft before re-raising, so the failure is still counted.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from ..models import Article, Cluster, EnrichmentDraft, Summary
from ..storage.store import NewsStore
from ..utils.logging import get_logger
from ..utils.pipeline_config import PipelineConfig
from .ai import AIClient
from .classify import DEFAULT_CATEGORY, categorize_articles
from .images import choose_image, filter_image_candidates
from .seo import FALLBACK_TITLE_CHARS, META_DESCRIPTION_MAX, fallback_meta, generate_seo, generate_slug
from .summarize import PROMPT_VERSION, summarize_articles
from .translate import LANGUAGE_NAMES, translate_story

logger = get_logger("newsroom.processors.tasks")

TASK_ORDER = ("categorize", "summarize", "seo", "translate", "image")


class TaskSkipped(Exception):
    """The task had nothing to do; not a failure."""


@dataclass(slots=True)
class ClusterWork:
    cluster: Cluster
    articles: List[Article]
    summary: Optional[Summary]
    draft: EnrichmentDraft
    fresh_summary: bool = False

    @property
    def summary_en(self) -> Optional[str]:
        return self.draft.summary_en or (self.summary.summary_en if self.summary else None)

    @property
    def key_facts_en(self) -> List[str]:
        return self.draft.key_facts_en or (self.summary.key_facts_en if self.summary else [])

    @property
    def note_en(self) -> Optional[str]:
        return self.draft.confirmed_vs_differs_en or (
            self.summary.confirmed_vs_differs_en if self.summary else None
        )


class EnrichmentTasks:
    def __init__(self, store: NewsStore, ai: AIClient, config: PipelineConfig) -> None:
        self.store = store
        self.ai = ai
        self.config = config
        self._tasks: Dict[str, Callable[[ClusterWork], None]] = {
            "categorize": self.categorize,
            "summarize": self.summarize,
            "seo": self.seo,
            "translate": self.translate,
            "image": self.image,
        }

    def get(self, name: str) -> Callable[[ClusterWork], None]:
        return self._tasks[name]

    def load(self, cluster_id: str) -> ClusterWork:
        cluster = self.store.get_cluster(cluster_id)
        if cluster is None:
            raise LookupError(f"Cluster {cluster_id} not found")
        articles = self.store.articles_for_cluster(cluster_id)
        published = [a.published_at for a in articles if a.published_at]
        draft = EnrichmentDraft(cluster_id=cluster_id, published_at=min(published) if published else None)
        return ClusterWork(
            cluster=cluster,
            articles=articles,
            summary=self.store.get_summary(cluster_id),
            draft=draft,
        )

    # ---------------- Tasks -----------------
    def categorize(self, work: ClusterWork) -> None:
        if work.cluster.category:
            raise TaskSkipped("already categorized")
        try:
            work.draft.category = categorize_articles(
                work.articles,
                ai=self.ai,
                model=self.config.summary_model,
                timeout=self.config.timeout_for("categorize"),
            )
        except Exception:
            work.draft.category = DEFAULT_CATEGORY
            work.draft.category_fallback = True
            raise

    def summarize(self, work: ClusterWork) -> None:
        previous = work.summary.summary_en if work.summary else None
        if previous and not self._gained_articles(work):
            raise TaskSkipped("summary up to date")
        work.draft.summary_en = summarize_articles(
            work.articles,
            ai=self.ai,
            previous=previous,
            model=self.config.summary_model,
            timeout=self.config.timeout_for("summarize"),
            max_articles=self.config.max_summary_articles,
        )
        work.draft.summary_model = self.config.summary_model
        work.draft.prompt_version = PROMPT_VERSION
        work.fresh_summary = True

    def seo(self, work: ClusterWork) -> None:
        summary = work.summary_en
        if not summary:
            raise TaskSkipped("no English summary")
        if not work.fresh_summary and work.cluster.meta_title_en:
            raise TaskSkipped("metadata up to date")
        headline = work.cluster.headline
        try:
            result = generate_seo(
                headline,
                summary,
                work.articles,
                ai=self.ai,
                category=work.draft.category or work.cluster.category,
                model=self.config.summary_model,
                timeout=self.config.timeout_for("seo"),
            )
        except Exception:
            title, description = fallback_meta(headline, summary)
            work.draft.meta_title_en = title
            work.draft.meta_description_en = description
            work.draft.slug = generate_slug(title)
            raise
        draft = work.draft
        draft.meta_title_en = result.title
        draft.meta_description_en = result.description
        draft.slug = result.slug
        draft.topics = result.topics
        draft.city = result.city
        draft.keywords = result.keywords
        draft.key_facts_en = result.key_facts
        draft.confirmed_vs_differs_en = result.confirmed_vs_differs

    def translate(self, work: ClusterWork) -> None:
        summary = work.summary_en
        if not summary:
            raise TaskSkipped("no English summary")
        existing = work.summary
        if not work.fresh_summary and existing and existing.summary_si and existing.summary_ta:
            raise TaskSkipped("translations up to date")

        first_error: Optional[Exception] = None
        for language in LANGUAGE_NAMES:
            try:
                result = translate_story(
                    language,
                    work.cluster.headline,
                    summary,
                    ai=self.ai,
                    key_facts=work.key_facts_en,
                    note=work.note_en,
                    model=self.config.translate_model,
                    timeout=self.config.timeout_for("translate"),
                )
            except Exception as exc:  # noqa: BLE001 - try the other language, then re-raise
                logger.warning("Translation to %s failed for %s: %s", language, work.cluster.id, exc)
                first_error = first_error or exc
                continue
            setattr(work.draft, f"headline_{language}", result.headline)
            setattr(work.draft, f"summary_{language}", result.summary)
            setattr(work.draft, f"key_facts_{language}", result.key_facts)
            setattr(work.draft, f"confirmed_vs_differs_{language}", result.confirmed_vs_differs)
            setattr(work.draft, f"meta_title_{language}", result.headline[:FALLBACK_TITLE_CHARS])
            setattr(work.draft, f"meta_description_{language}", result.summary[:META_DESCRIPTION_MAX])
        if first_error is not None:
            raise first_error

    def image(self, work: ClusterWork) -> None:
        if work.cluster.image_url and not work.fresh_summary:
            raise TaskSkipped("image already selected")
        candidates = filter_image_candidates(a.image_url for a in work.articles)
        if not candidates:
            raise TaskSkipped("no image candidates")
        try:
            work.draft.image_url = choose_image(
                candidates,
                work.cluster.headline,
                work.summary_en or "",
                ai=self.ai,
                model=self.config.summary_model,
                timeout=self.config.timeout_for("image"),
            )
        except Exception:
            work.draft.image_url = candidates[0]
            raise

    # ---------------- Helpers -----------------
    @staticmethod
    def _gained_articles(work: ClusterWork) -> bool:
        summary = work.summary
        if summary is None or summary.updated_at is None or work.cluster.last_seen_at is None:
            return True
        return work.cluster.last_seen_at > summary.updated_at
