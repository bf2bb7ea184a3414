from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

from ..models import Article, Cluster
from ..storage.store import NewsStore
from ..utils.logging import get_logger
from .similarity import extract_entities, normalize_title, similarity_score

logger = get_logger("newsroom.processors.cluster")


@dataclass(slots=True)
class _Entry:
    cluster_id: str
    tokens: List[str]
    entities: List[str]
    last_seen_at: Optional[datetime]


class ClusterIndex:
    """In-memory view of the clusters an article may join.

    Holds precomputed tokens per headline. ``best_match`` returns the cluster
    with the highest score at or above the threshold; on equal scores the
    most recently seen cluster wins.
    """

    def __init__(self, threshold: float = 0.65) -> None:
        self.threshold = threshold
        self._entries: Dict[str, _Entry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def add(self, cluster_id: str, headline: str, last_seen_at: Optional[datetime] = None) -> None:
        self._entries[cluster_id] = _Entry(
            cluster_id=cluster_id,
            tokens=normalize_title(headline),
            entities=extract_entities(headline),
            last_seen_at=last_seen_at,
        )

    def touch(self, cluster_id: str, when: datetime) -> None:
        entry = self._entries.get(cluster_id)
        if entry is not None:
            entry.last_seen_at = when

    def best_match(self, title: str) -> Optional[tuple[str, float]]:
        tokens = normalize_title(title)
        entities = extract_entities(title)
        best: Optional[tuple[str, float]] = None
        best_seen: Optional[datetime] = None
        for entry in self._entries.values():
            score = similarity_score(tokens, entry.tokens, entities, entry.entities)
            if score < self.threshold:
                continue
            if best is None or score > best[1] or (
                score == best[1] and _later(entry.last_seen_at, best_seen)
            ):
                best = (entry.cluster_id, score)
                best_seen = entry.last_seen_at
        return best


def _later(a: Optional[datetime], b: Optional[datetime]) -> bool:
    if a is None:
        return False
    return b is None or a > b


@dataclass(slots=True)
class ClusteringResult:
    touched: Dict[str, Cluster] = field(default_factory=dict)
    created: int = 0
    attached: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)


class ClusteringEngine:
    """Assign claimed articles to clusters inside the recent window."""

    def __init__(
        self,
        store: NewsStore,
        *,
        threshold: float = 0.65,
        window_hours: int = 24,
        cluster_ttl_days: int = 30,
    ) -> None:
        self.store = store
        self.threshold = threshold
        self.window = timedelta(hours=window_hours)
        self.ttl = timedelta(days=cluster_ttl_days)
        self._index: Optional[ClusterIndex] = None

    def load_index(self) -> ClusterIndex:
        index = ClusterIndex(self.threshold)
        since = self.store.clock() - self.window
        for cluster in self.store.open_clusters(since):
            index.add(cluster.id, cluster.headline, cluster.last_seen_at)
        logger.debug("Loaded %d open cluster(s) since %s", len(index), since.isoformat())
        self._index = index
        return index

    def cluster(self, batch: Sequence[Article], result: Optional[ClusteringResult] = None) -> ClusteringResult:
        """Cluster ``batch`` in order; each article ends processed or failed."""
        result = result or ClusteringResult()
        index = self._index or self.load_index()
        for article in batch:
            try:
                match = index.best_match(article.title)
                if match is None:
                    cluster = self.store.create_cluster(article.title, language=article.lang, ttl=self.ttl)
                    index.add(cluster.id, cluster.headline, cluster.last_seen_at)
                    result.created += 1
                    cluster_id = cluster.id
                else:
                    cluster_id = match[0]
                updated = self.store.attach_article(article.id, cluster_id)
                if updated is None:
                    logger.warning("Article %s was no longer in processing; skipped", article.id)
                    continue
                index.touch(cluster_id, updated.last_seen_at or self.store.clock())
                result.touched[cluster_id] = updated
                result.attached += 1
            except Exception as exc:  # noqa: BLE001 - isolate the failing article
                message = f"cluster {article.id}: {exc}"
                logger.error("Clustering failed for article %s: %s", article.id, exc)
                result.failed += 1
                result.errors.append(message[:500])
                try:
                    self.store.mark_article_failed(article.id, str(exc))
                except Exception as mark_exc:  # noqa: BLE001
                    logger.error("Could not mark article %s failed: %s", article.id, mark_exc)
        return result
