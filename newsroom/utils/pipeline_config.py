from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, Optional

from .logging import get_logger

logger = get_logger("newsroom.config")


def get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring invalid integer for %s: %r", name, raw)
        return default


def get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring invalid number for %s: %r", name, raw)
        return default


def get_str(name: str, default: Optional[str] = None) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip()


def _default_task_timeouts() -> Dict[str, float]:
    return {
        "categorize": 15.0,
        "summarize": 30.0,
        "seo": 30.0,
        "translate": 45.0,
        "image": 60.0,
    }


@dataclass(slots=True)
class PipelineConfig:
    """Runtime settings, normally built with :meth:`from_env`."""

    database_url: str = "sqlite:///newsroom.db"
    cron_secret: Optional[str] = None

    lock_name: str = "cron_pipeline"
    lock_ttl_minutes: int = 10
    min_run_interval_minutes: int = 10

    feed_timeout: float = 15.0
    feed_retries: int = 3
    feed_retry_delay: float = 2.0
    rss_concurrency: int = 4
    parallel_fetch_workers: int = 10
    sample_items_per_feed: int = 10

    transaction_batch_size: int = 100
    claim_batch_size: int = 10
    max_articles_per_run: int = 100
    max_processing_minutes: float = 50.0

    similarity_threshold: float = 0.65
    window_hours: int = 24
    cluster_ttl_days: int = 30

    parallel_cluster_workers: int = 5
    max_consecutive_failures: int = 5
    task_retries: int = 2
    task_backoff: float = 1.5
    max_summary_articles: int = 5
    summary_model: str = "gpt-4o-mini"
    translate_model: str = "gpt-4o-mini"
    task_timeouts: Dict[str, float] = field(default_factory=_default_task_timeouts)

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        # Read at call time so values loaded from .env in main() are respected
        summary_model = get_str("SUMMARY_MODEL", "gpt-4o-mini") or "gpt-4o-mini"
        return cls(
            database_url=get_str("DATABASE_URL", "sqlite:///newsroom.db") or "sqlite:///newsroom.db",
            cron_secret=get_str("CRON_SECRET"),
            lock_name=get_str("LOCK_NAME", "cron_pipeline") or "cron_pipeline",
            lock_ttl_minutes=get_int("LOCK_TTL_MINUTES", 10),
            min_run_interval_minutes=get_int("MIN_RUN_INTERVAL_MINUTES", 10),
            feed_timeout=get_float("FEED_TIMEOUT_SECONDS", 15.0),
            feed_retries=get_int("FEED_RETRIES", 3),
            feed_retry_delay=get_float("FEED_RETRY_DELAY_SECONDS", 2.0),
            rss_concurrency=get_int("RSS_CONCURRENCY", 4),
            parallel_fetch_workers=get_int("PARALLEL_FETCH_WORKERS", 10),
            sample_items_per_feed=get_int("SAMPLE_ITEMS_PER_FEED", 10),
            transaction_batch_size=get_int("TRANSACTION_BATCH_SIZE", 100),
            claim_batch_size=get_int("BATCH_SIZE", 10),
            max_articles_per_run=get_int("MAX_ARTICLES_PER_RUN", 100),
            max_processing_minutes=get_float("MAX_PROCESSING_MINUTES", 50.0),
            similarity_threshold=get_float("SIMILARITY_THRESHOLD", 0.65),
            window_hours=get_int("WINDOW_HOURS", 24),
            cluster_ttl_days=get_int("CLUSTER_TTL_DAYS", 30),
            parallel_cluster_workers=get_int("PARALLEL_CLUSTER_WORKERS", 5),
            max_consecutive_failures=get_int("MAX_CONSECUTIVE_FAILURES", 5),
            task_retries=get_int("TASK_RETRIES", 2),
            task_backoff=get_float("TASK_BACKOFF_SECONDS", 1.5),
            max_summary_articles=get_int("MAX_SUMMARY_ARTICLES", 5),
            summary_model=summary_model,
            translate_model=get_str("SUMMARY_TRANSLATE_MODEL", summary_model) or summary_model,
        )

    @property
    def max_processing_seconds(self) -> float:
        return self.max_processing_minutes * 60.0

    def timeout_for(self, task: str) -> float:
        return self.task_timeouts.get(task, 30.0)
