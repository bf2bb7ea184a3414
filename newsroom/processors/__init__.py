"""Processing layer: normalization, deduplication, clustering and enrichment tasks."""

from .cluster import ClusterIndex, ClusteringEngine, ClusteringResult
from .dedup import ArticleInserter, InsertStats, make_article_hash
from .normalize import clean_html_to_text, detect_language, make_excerpt, normalize_plain_text
from .tasks import TASK_ORDER, ClusterWork, EnrichmentTasks, TaskSkipped

__all__ = [
    "ClusterIndex",
    "ClusteringEngine",
    "ClusteringResult",
    "ArticleInserter",
    "InsertStats",
    "make_article_hash",
    "clean_html_to_text",
    "detect_language",
    "make_excerpt",
    "normalize_plain_text",
    "TASK_ORDER",
    "ClusterWork",
    "EnrichmentTasks",
    "TaskSkipped",
]
