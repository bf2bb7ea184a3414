from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.engine import Engine

from .fetchers import FeedPool
from .models import Source
from .orchestrator import PipelineOrchestrator
from .pipeline.gate import EarlyExitGate
from .pipeline.lock import DistributedLock
from .pipeline.metrics import MetricsCollector, ProgressTracker
from .pipeline.trigger import PipelineTrigger
from .processors import ArticleInserter, EnrichmentTasks
from .processors.ai import AIClient, create_ai_client
from .storage.db import create_db_engine, init_db
from .storage.store import NewsStore
from .storage.transactions import TransactionManager
from .utils.clock import Clock, utc_now
from .utils.logging import get_logger
from .utils.pipeline_config import PipelineConfig
from .utils.retry import RetryPolicy

logger = get_logger("newsroom.context")


@dataclass(slots=True)
class AppContext:
    """Everything a run or a request needs, built once per process."""

    config: PipelineConfig
    engine: Engine
    transactions: TransactionManager
    store: NewsStore
    pool: FeedPool
    gate: EarlyExitGate
    ai_factory: Callable[[], AIClient]
    clock: Clock = utc_now
    progress: Optional[ProgressTracker] = None
    _ai: Optional[AIClient] = None

    @property
    def ai(self) -> AIClient:
        if self._ai is None:
            self._ai = self.ai_factory()
        return self._ai

    def new_lock(self) -> DistributedLock:
        return DistributedLock(
            self.engine,
            name=self.config.lock_name,
            ttl_minutes=self.config.lock_ttl_minutes,
            transactions=self.transactions,
            clock=self.clock,
        )

    def new_tasks(self) -> EnrichmentTasks:
        return EnrichmentTasks(self.store, self.ai, self.config)

    def new_orchestrator(self, metrics: Optional[MetricsCollector] = None) -> PipelineOrchestrator:
        return PipelineOrchestrator(
            config=self.config,
            store=self.store,
            pool=self.pool,
            inserter=ArticleInserter(self.store, self.transactions),
            tasks_factory=self.new_tasks,
            metrics=metrics,
            progress=self.progress,
        )

    def run_pipeline(self, sources: List[Source], metrics: Optional[MetricsCollector] = None) -> Dict[str, Any]:
        return self.new_orchestrator(metrics).run(sources)

    def new_trigger(self) -> PipelineTrigger:
        return PipelineTrigger(
            store=self.store,
            lock_factory=self.new_lock,
            gate=self.gate,
            run_pipeline=self.run_pipeline,
        )


def build_context(
    config: Optional[PipelineConfig] = None,
    *,
    engine: Optional[Engine] = None,
    ai_factory: Optional[Callable[[], AIClient]] = None,
    pool: Optional[FeedPool] = None,
    clock: Clock = utc_now,
    create_schema: bool = True,
) -> AppContext:
    cfg = config or PipelineConfig.from_env()
    eng = engine or create_db_engine(cfg.database_url)
    if create_schema:
        init_db(eng)
    transactions = TransactionManager(eng, chunk_size=cfg.transaction_batch_size)
    store = NewsStore(eng, transactions, clock=clock)
    feed_pool = pool or FeedPool(
        workers=cfg.parallel_fetch_workers,
        per_language=cfg.rss_concurrency,
        timeout=cfg.feed_timeout,
        policy=RetryPolicy(attempts=cfg.feed_retries, base_delay=cfg.feed_retry_delay),
    )
    gate = EarlyExitGate(
        store,
        feed_pool,
        min_interval_minutes=cfg.min_run_interval_minutes,
        sample_items_per_feed=cfg.sample_items_per_feed,
    )
    logger.debug("Application context ready (db=%s)", eng.url.render_as_string(hide_password=True))
    return AppContext(
        config=cfg,
        engine=eng,
        transactions=transactions,
        store=store,
        pool=feed_pool,
        gate=gate,
        ai_factory=ai_factory or create_ai_client,
        clock=clock,
    )
