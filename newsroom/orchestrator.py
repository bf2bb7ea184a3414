from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional

from .fetchers import FeedPool, SourceFetchResult
from .models import Source
from .pipeline.enrichment import EnrichmentOrchestrator
from .pipeline.metrics import MetricsCollector, ProgressTracker
from .processors import ArticleInserter, ClusteringEngine, ClusteringResult, EnrichmentTasks
from .storage.store import NewsStore
from .utils.logging import get_logger
from .utils.pipeline_config import PipelineConfig
from .utils.retry import RetryPolicy

logger = get_logger("newsroom.orchestrator")


@dataclass(slots=True)
class RunBudget:
    """Soft limits for one run: articles claimed and wall-clock time."""

    max_articles: int
    deadline: float
    claimed: int = 0

    @classmethod
    def start(cls, max_articles: int, max_seconds: float) -> "RunBudget":
        return cls(max_articles=max_articles, deadline=time.monotonic() + max_seconds)

    @property
    def remaining(self) -> int:
        return max(0, self.max_articles - self.claimed)

    @property
    def expired(self) -> bool:
        return time.monotonic() >= self.deadline

    @property
    def exhausted(self) -> bool:
        return self.remaining <= 0 or self.expired


class PipelineOrchestrator:
    """One pipeline run: fetch, insert, claim and cluster, then enrich.

    Collaborators are passed in so tests can swap the fetcher and the AI
    client; :func:`newsroom.context.build_context` wires the real ones.
    """

    def __init__(
        self,
        *,
        config: PipelineConfig,
        store: NewsStore,
        pool: FeedPool,
        inserter: ArticleInserter,
        tasks: Optional[EnrichmentTasks] = None,
        tasks_factory: Optional[Callable[[], EnrichmentTasks]] = None,
        metrics: Optional[MetricsCollector] = None,
        progress: Optional[ProgressTracker] = None,
    ) -> None:
        self.config = config
        self.store = store
        self.pool = pool
        self.inserter = inserter
        if tasks is None and tasks_factory is None:
            raise ValueError("tasks or tasks_factory is required")
        self._tasks = tasks
        self._tasks_factory = tasks_factory
        self.metrics = metrics or MetricsCollector(clock=store.clock)
        self.progress = progress or ProgressTracker()

    @property
    def tasks(self) -> EnrichmentTasks:
        """Built on first use so a missing AI key only affects enrichment."""
        if self._tasks is None:
            self._tasks = self._tasks_factory()
        return self._tasks

    # ---------------- Stages -----------------
    def fetch_all(self, sources: Iterable[Source]) -> List[SourceFetchResult]:
        results = self.pool.fetch_all(sources)
        for r in results:
            self.metrics.record_fetch(
                r.source.name,
                r.source.language,
                items=len(r.items),
                ok=r.ok,
                error=f"{r.reason}: {r.error}" if r.error else None,
                duration_ms=r.duration_ms,
            )
        self.progress.emit("fetch", len(results), len(results), f"{sum(len(r.items) for r in results)} items")
        return results

    def insert(self, results: List[SourceFetchResult]) -> None:
        stats = self.inserter.insert((r.source, item) for r in results for item in r.items)
        self.metrics.record_insert(inserted=stats.inserted, deduplicated=stats.deduplicated, failed=stats.failed)
        self.metrics.incr("invalid_items", stats.invalid)
        for message in stats.errors:
            self.metrics.record_error("insert", message)

    def cluster_backlog(self, budget: RunBudget) -> ClusteringResult:
        engine = ClusteringEngine(
            self.store,
            threshold=self.config.similarity_threshold,
            window_hours=self.config.window_hours,
            cluster_ttl_days=self.config.cluster_ttl_days,
        )
        result = ClusteringResult()
        while not budget.exhausted:
            batch = self.store.claim_new_articles(min(self.config.claim_batch_size, budget.remaining))
            if not batch:
                break
            budget.claimed += len(batch)
            engine.cluster(batch, result)
            self.progress.emit("cluster", budget.claimed, self.config.max_articles_per_run)
        if budget.remaining <= 0:
            logger.info("Reached MAX_ARTICLES_PER_RUN=%d; remaining articles wait for the next run", budget.max_articles)
        elif budget.expired:
            logger.warning("Processing deadline reached during clustering")
        for message in result.errors:
            self.metrics.record_error("cluster", message)
        self.metrics.incr("articles_claimed", budget.claimed)
        self.metrics.incr("clusters_created", result.created)
        self.metrics.incr("articles_clustered", result.attached)
        self.metrics.incr("articles_failed", result.failed)
        return result

    def enrichment_targets(self, clustering: ClusteringResult) -> List[str]:
        since = self.store.clock() - timedelta(hours=self.config.window_hours)
        pending = self.store.clusters_needing_enrichment(since)
        return list(dict.fromkeys(list(clustering.touched) + pending))

    def enrich(self, cluster_ids: List[str], budget: RunBudget) -> Dict[str, Any]:
        try:
            tasks = self.tasks
        except Exception as exc:  # noqa: BLE001 - drafts stay queued for the next run
            logger.error("Enrichment unavailable, %d cluster(s) deferred: %s", len(cluster_ids), exc)
            self.metrics.record_error("enrich", f"AI client unavailable: {exc}")
            return {"processed": 0, "deferred": len(cluster_ids), "deadline_hit": False, "error": "ai_unavailable"}
        orchestrator = EnrichmentOrchestrator(
            self.store,
            tasks,
            workers=self.config.parallel_cluster_workers,
            max_consecutive_failures=self.config.max_consecutive_failures,
            task_policy=RetryPolicy(
                attempts=self.config.task_retries + 1,
                base_delay=self.config.task_backoff,
                multiplier=self.config.task_backoff,
                jitter=0.2,
            ),
            metrics=self.metrics,
            progress=self.progress,
        )
        return orchestrator.run(cluster_ids, deadline=budget.deadline).to_dict()

    # ---------------- Entry -----------------
    def run(self, sources: Iterable[Source]) -> Dict[str, Any]:
        budget = RunBudget.start(self.config.max_articles_per_run, self.config.max_processing_seconds)
        results = self.fetch_all(sources)
        self.insert(results)
        clustering = self.cluster_backlog(budget)
        targets = self.enrichment_targets(clustering)
        if budget.expired:
            logger.warning("No time left for enrichment; %d cluster(s) deferred", len(targets))
            enrichment: Dict[str, Any] = {"processed": 0, "deferred": len(targets), "deadline_hit": True}
        else:
            enrichment = self.enrich(targets, budget)
        self.metrics.finalize()

        stats = self.metrics.to_dict()
        summary = {
            "fetched": stats["fetch"]["items"],
            "inserted": stats["inserted"],
            "deduplicated": stats["deduplicated"],
            "claimed": budget.claimed,
            "clusters_touched": len(clustering.touched),
            "enrichment": enrichment,
            "metrics": stats,
        }
        logger.info(
            "Pipeline finished: fetched=%s, inserted=%s, deduplicated=%s, claimed=%s, clusters=%s, duration_ms=%s",
            summary["fetched"],
            summary["inserted"],
            summary["deduplicated"],
            summary["claimed"],
            summary["clusters_touched"],
            stats["duration_ms"],
        )
        return summary
