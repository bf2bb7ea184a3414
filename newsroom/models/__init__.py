"""Typed records shared by the fetch, storage and enrichment layers."""

from .article import Article, ArticleStatus, NewArticle, STATUS_TRANSITIONS
from .cluster import Cluster, ClusterStatus, Summary
from .enrichment import TASK_FAILED, TASK_OK, TASK_SKIPPED, EnrichmentDraft, TaskOutcome
from .pipeline import LockRecord, PipelineRun
from .source import LANGUAGES, Source

__all__ = [
    "Article",
    "ArticleStatus",
    "NewArticle",
    "STATUS_TRANSITIONS",
    "Cluster",
    "ClusterStatus",
    "Summary",
    "EnrichmentDraft",
    "TaskOutcome",
    "TASK_OK",
    "TASK_FAILED",
    "TASK_SKIPPED",
    "LockRecord",
    "PipelineRun",
    "LANGUAGES",
    "Source",
]
