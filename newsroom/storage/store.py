"""Typed data access for the pipeline.

Rows are decoded into the dataclasses from :mod:`newsroom.models` here and
nowhere else. Writes go through :class:`TransactionManager`, so transient
lock/deadlock/timeout failures are retried and every statement is written to
be safe to replay.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from sqlalchemy import and_, distinct, func, select, update
from sqlalchemy.engine import Connection, Engine

from ..models import (
    Article,
    ArticleStatus,
    Cluster,
    ClusterStatus,
    EnrichmentDraft,
    NewArticle,
    PipelineRun,
    Source,
    Summary,
)
from ..utils.clock import Clock, as_utc, utc_now
from ..utils.logging import get_logger
from .db import dialect_insert
from .schema import articles, clusters, pipeline_runs, pipeline_settings, sources, summaries
from .transactions import BatchResult, TransactionManager

logger = get_logger("newsroom.storage.store")

SETTINGS_NAME = "main"


def new_id() -> str:
    return str(uuid.uuid4())


def _source_from_row(row: Mapping[str, Any]) -> Source:
    return Source(
        id=row["id"],
        name=row["name"],
        feed_url=row["feed_url"],
        base_domain=row["base_domain"],
        language=row["language"] or "en",
        active=bool(row["active"]),
        enabled=bool(row["enabled"]),
    )


def _article_from_row(row: Mapping[str, Any]) -> Article:
    return Article(
        id=row["id"],
        source_id=row["source_id"],
        title=row["title"],
        url=row["url"],
        hash=row["hash"],
        status=ArticleStatus(row["status"]),
        guid=row["guid"],
        content_excerpt=row["content_excerpt"],
        content_text=row["content_text"],
        image_url=row["image_url"],
        published_at=as_utc(row["published_at"]),
        lang=row["lang"] or "en",
        cluster_id=row["cluster_id"],
        error_message=row["error_message"],
        created_at=as_utc(row["created_at"]),
        processed_at=as_utc(row["processed_at"]),
    )


def _cluster_from_row(row: Mapping[str, Any]) -> Cluster:
    return Cluster(
        id=row["id"],
        headline=row["headline"],
        status=ClusterStatus(row["status"]),
        headline_si=row["headline_si"],
        headline_ta=row["headline_ta"],
        slug=row["slug"],
        topic=row["topic"],
        topics=list(row["topics"] or []),
        category=row["category"],
        city=row["city"],
        language=row["language"] or "en",
        source_count=row["source_count"] or 0,
        article_count=row["article_count"] or 0,
        first_seen_at=as_utc(row["first_seen_at"]),
        last_seen_at=as_utc(row["last_seen_at"]),
        published_at=as_utc(row["published_at"]),
        expires_at=as_utc(row["expires_at"]),
        image_url=row["image_url"],
        meta_title_en=row["meta_title_en"],
        meta_description_en=row["meta_description_en"],
        meta_title_si=row["meta_title_si"],
        meta_description_si=row["meta_description_si"],
        meta_title_ta=row["meta_title_ta"],
        meta_description_ta=row["meta_description_ta"],
        keywords=list(row["keywords"] or []),
        updated_at=as_utc(row["updated_at"]),
    )


def _summary_from_row(row: Mapping[str, Any]) -> Summary:
    return Summary(
        cluster_id=row["cluster_id"],
        summary_en=row["summary_en"],
        summary_si=row["summary_si"],
        summary_ta=row["summary_ta"],
        key_facts_en=list(row["key_facts_en"] or []),
        key_facts_si=list(row["key_facts_si"] or []),
        key_facts_ta=list(row["key_facts_ta"] or []),
        confirmed_vs_differs_en=row["confirmed_vs_differs_en"],
        confirmed_vs_differs_si=row["confirmed_vs_differs_si"],
        confirmed_vs_differs_ta=row["confirmed_vs_differs_ta"],
        model=row["model"],
        prompt_version=row["prompt_version"],
        version=row["version"] or 0,
        updated_at=as_utc(row["updated_at"]),
    )


@dataclass(slots=True)
class PublishedCluster:
    """Read-model row handed to the front-end API."""

    cluster: Cluster
    summary: Optional[Summary]
    sources: List[Dict[str, str]] = field(default_factory=list)
    articles: List[Article] = field(default_factory=list)


class NewsStore:
    def __init__(self, engine: Engine, transactions: TransactionManager, *, clock: Clock = utc_now) -> None:
        self.engine = engine
        self.tx = transactions
        self.clock = clock
        self._insert = dialect_insert(engine)

    # ---------------- Sources -----------------
    def upsert_sources(self, items: Sequence[Source]) -> int:
        def _apply(conn: Connection, chunk: Sequence[Source]) -> int:
            for src in chunk:
                stmt = self._insert(sources).values(
                    id=src.id,
                    name=src.name,
                    feed_url=src.feed_url,
                    base_domain=src.base_domain,
                    language=src.language,
                    active=src.active,
                    enabled=src.enabled,
                )
                stmt = stmt.on_conflict_do_update(
                    index_elements=["feed_url"],
                    set_={
                        "name": stmt.excluded.name,
                        "base_domain": stmt.excluded.base_domain,
                        "language": stmt.excluded.language,
                        "active": stmt.excluded.active,
                        "enabled": stmt.excluded.enabled,
                    },
                )
                conn.execute(stmt)
            return len(chunk)

        return self.tx.run_batches(list(items), _apply, label="upsert_sources").applied

    def load_active_sources(self) -> List[Source]:
        stmt = (
            select(sources)
            .where(sources.c.active.is_(True), sources.c.enabled.is_(True))
            .order_by(sources.c.name)
        )
        return self.tx.read(lambda conn: [_source_from_row(r._mapping) for r in conn.execute(stmt)])

    # ---------------- Articles -----------------
    def existing_hashes(self, hashes: Iterable[str], conn: Optional[Connection] = None) -> set[str]:
        wanted = list({h for h in hashes if h})
        if not wanted:
            return set()

        def _query(c: Connection) -> set[str]:
            found: set[str] = set()
            # Keep IN lists short enough for every driver
            for start in range(0, len(wanted), 500):
                part = wanted[start : start + 500]
                found.update(c.execute(select(articles.c.hash).where(articles.c.hash.in_(part))).scalars())
            return found

        return _query(conn) if conn is not None else self.tx.read(_query)

    def count_existing_hashes(self, hashes: Iterable[str]) -> int:
        return len(self.existing_hashes(hashes))

    def insert_new_articles(self, conn: Connection, rows: Sequence[NewArticle]) -> int:
        """Insert rows, ignoring any whose hash already exists. Returns rows written."""
        now = self.clock()
        inserted = 0
        for row in rows:
            stmt = (
                self._insert(articles)
                .values(
                    id=new_id(),
                    source_id=row.source_id,
                    title=row.title,
                    url=row.url,
                    guid=row.guid,
                    hash=row.hash,
                    content_excerpt=row.content_excerpt,
                    content_text=row.content_text,
                    image_url=row.image_url,
                    published_at=row.published_at,
                    lang=row.lang,
                    status=ArticleStatus.NEW.value,
                    created_at=now,
                )
                .on_conflict_do_nothing(index_elements=["hash"])
            )
            inserted += max(conn.execute(stmt).rowcount or 0, 0)
        return inserted

    def claim_new_articles(self, limit: int) -> List[Article]:
        """Atomically move up to ``limit`` oldest ``new`` articles to ``processing``.

        One statement selects and marks the rows, so two workers racing on the
        same backlog can never both receive the same article.
        """
        if limit <= 0:
            return []

        def _claim(conn: Connection) -> List[Article]:
            candidates = (
                select(articles.c.id)
                .where(articles.c.status == ArticleStatus.NEW.value)
                .order_by(articles.c.created_at, articles.c.id)
                .limit(limit)
            )
            if conn.dialect.name == "postgresql":
                candidates = candidates.with_for_update(skip_locked=True)
            stmt = (
                update(articles)
                .where(articles.c.id.in_(candidates), articles.c.status == ArticleStatus.NEW.value)
                .values(status=ArticleStatus.PROCESSING.value)
                .returning(*articles.c)
            )
            claimed = [_article_from_row(r._mapping) for r in conn.execute(stmt)]
            claimed.sort(key=lambda a: (a.created_at or self.clock(), a.id))
            return claimed

        return self.tx.run(_claim, label="claim_articles")

    def mark_article_failed(self, article_id: str, error_message: str) -> bool:
        stmt = (
            update(articles)
            .where(articles.c.id == article_id, articles.c.status == ArticleStatus.PROCESSING.value)
            .values(
                status=ArticleStatus.FAILED.value,
                error_message=(error_message or "unknown error")[:1000],
                processed_at=self.clock(),
            )
        )
        return self.tx.run(lambda conn: conn.execute(stmt).rowcount == 1, label="mark_article_failed")

    def get_article(self, article_id: str) -> Optional[Article]:
        stmt = select(articles).where(articles.c.id == article_id)
        row = self.tx.read(lambda conn: conn.execute(stmt).first())
        return _article_from_row(row._mapping) if row else None

    def articles_for_cluster(self, cluster_id: str, *, limit: Optional[int] = None) -> List[Article]:
        stmt = (
            select(articles)
            .where(articles.c.cluster_id == cluster_id)
            .order_by(articles.c.published_at.desc(), articles.c.created_at.desc())
        )
        if limit:
            stmt = stmt.limit(limit)
        return self.tx.read(lambda conn: [_article_from_row(r._mapping) for r in conn.execute(stmt)])

    def count_articles_by_status(self) -> Dict[str, int]:
        stmt = select(articles.c.status, func.count()).group_by(articles.c.status)
        rows = self.tx.read(lambda conn: conn.execute(stmt).all())
        counts = {s.value: 0 for s in ArticleStatus}
        counts.update({status: int(n) for status, n in rows})
        return counts

    # ---------------- Clusters -----------------
    def open_clusters(self, since: datetime) -> List[Cluster]:
        stmt = select(clusters).where(clusters.c.last_seen_at >= since).order_by(clusters.c.last_seen_at.desc())
        return self.tx.read(lambda conn: [_cluster_from_row(r._mapping) for r in conn.execute(stmt)])

    def get_cluster(self, cluster_id: str) -> Optional[Cluster]:
        stmt = select(clusters).where(clusters.c.id == cluster_id)
        row = self.tx.read(lambda conn: conn.execute(stmt).first())
        return _cluster_from_row(row._mapping) if row else None

    def get_summary(self, cluster_id: str) -> Optional[Summary]:
        stmt = select(summaries).where(summaries.c.cluster_id == cluster_id)
        row = self.tx.read(lambda conn: conn.execute(stmt).first())
        return _summary_from_row(row._mapping) if row else None

    def create_cluster(self, headline: str, *, language: str = "en", ttl: timedelta = timedelta(days=30)) -> Cluster:
        now = self.clock()
        cluster = Cluster(
            id=new_id(),
            headline=headline,
            status=ClusterStatus.DRAFT,
            language=language,
            first_seen_at=now,
            last_seen_at=now,
            expires_at=now + ttl,
            updated_at=now,
        )

        def _create(conn: Connection) -> Cluster:
            conn.execute(
                clusters.insert().values(
                    id=cluster.id,
                    headline=cluster.headline,
                    status=cluster.status.value,
                    language=cluster.language,
                    source_count=0,
                    article_count=0,
                    first_seen_at=cluster.first_seen_at,
                    last_seen_at=cluster.last_seen_at,
                    expires_at=cluster.expires_at,
                    updated_at=cluster.updated_at,
                )
            )
            return cluster

        return self.tx.run(_create, label="create_cluster")

    def _recount(self, conn: Connection, cluster_id: str) -> tuple[int, int]:
        source_count, article_count = conn.execute(
            select(func.count(distinct(articles.c.source_id)), func.count(articles.c.id)).where(
                articles.c.cluster_id == cluster_id
            )
        ).one()
        return int(source_count or 0), int(article_count or 0)

    def attach_article(self, article_id: str, cluster_id: str) -> Optional[Cluster]:
        """Link a claimed article to ``cluster_id`` and mark it processed.

        Counts and ``last_seen_at`` are recomputed in the same transaction.
        Returns the refreshed cluster, or ``None`` when the article was no
        longer in ``processing`` (someone else finished it).
        """

        def _attach(conn: Connection) -> Optional[Cluster]:
            now = self.clock()
            moved = conn.execute(
                update(articles)
                .where(articles.c.id == article_id, articles.c.status == ArticleStatus.PROCESSING.value)
                .values(cluster_id=cluster_id, status=ArticleStatus.PROCESSED.value, processed_at=now)
            ).rowcount
            if moved != 1:
                return None
            source_count, article_count = self._recount(conn, cluster_id)
            conn.execute(
                update(clusters)
                .where(clusters.c.id == cluster_id)
                .values(source_count=source_count, article_count=article_count, last_seen_at=now, updated_at=now)
            )
            row = conn.execute(select(clusters).where(clusters.c.id == cluster_id)).first()
            return _cluster_from_row(row._mapping) if row else None

        return self.tx.run(_attach, label="attach_article")

    def clusters_needing_enrichment(self, since: datetime, *, limit: int = 100) -> List[str]:
        """Draft clusters still inside the window; they are retried every run."""
        stmt = (
            select(clusters.c.id)
            .where(clusters.c.status == ClusterStatus.DRAFT.value, clusters.c.last_seen_at >= since)
            .order_by(clusters.c.last_seen_at.desc())
            .limit(limit)
        )
        return self.tx.read(lambda conn: list(conn.execute(stmt).scalars()))

    def _slug_taken(self, conn: Connection, slug: str, cluster_id: str) -> bool:
        stmt = select(clusters.c.id).where(clusters.c.slug == slug, clusters.c.id != cluster_id).limit(1)
        return conn.execute(stmt).first() is not None

    def save_enrichment(self, draft: EnrichmentDraft) -> Cluster:
        """Persist an enrichment pass. Safe to apply more than once."""
        return self.tx.run(lambda conn: self._save_enrichment(conn, draft), label="save_enrichment")

    def _save_enrichment(self, conn: Connection, draft: EnrichmentDraft) -> Cluster:
        now = self.clock()
        row = conn.execute(select(clusters).where(clusters.c.id == draft.cluster_id)).first()
        if row is None:
            raise LookupError(f"Cluster {draft.cluster_id} does not exist")
        current = _cluster_from_row(row._mapping)

        values: Dict[str, Any] = {"updated_at": now}
        if draft.category:
            values["category"] = draft.category
            values["topic"] = draft.category
        topics = list(dict.fromkeys(([draft.category] if draft.category else []) + draft.topics))
        if topics:
            values["topics"] = topics
        optional = {
            "city": draft.city,
            "headline_si": draft.headline_si,
            "headline_ta": draft.headline_ta,
            "image_url": draft.image_url,
            "meta_title_en": draft.meta_title_en,
            "meta_description_en": draft.meta_description_en,
            "meta_title_si": draft.meta_title_si,
            "meta_description_si": draft.meta_description_si,
            "meta_title_ta": draft.meta_title_ta,
            "meta_description_ta": draft.meta_description_ta,
        }
        values.update({k: v for k, v in optional.items() if v})
        if draft.keywords:
            values["keywords"] = draft.keywords

        if not current.slug and draft.slug:
            slug = draft.slug
            if self._slug_taken(conn, slug, current.id):
                slug = f"{slug}-{current.id[:8]}"
            values["slug"] = slug

        meta_title = values.get("meta_title_en")
        if meta_title and meta_title != current.meta_title_en:
            clash = conn.execute(
                select(clusters.c.id)
                .where(clusters.c.meta_title_en == meta_title, clusters.c.id != current.id)
                .limit(1)
            ).first()
            if clash is not None:
                values["meta_title_en"] = f"{meta_title[:50]} | {current.id[:8]}"

        source_count, article_count = self._recount(conn, current.id)
        values["source_count"] = source_count
        values["article_count"] = article_count

        has_summary = bool(draft.summary_en)
        if not has_summary:
            existing = conn.execute(select(summaries.c.summary_en).where(summaries.c.cluster_id == current.id)).first()
            has_summary = bool(existing and existing[0])
        has_topic = bool(draft.category or current.topic)
        if has_topic and has_summary:
            values["status"] = ClusterStatus.PUBLISHED.value
            if current.published_at is None:
                values["published_at"] = draft.published_at or now

        conn.execute(update(clusters).where(clusters.c.id == current.id).values(**values))
        self._upsert_summary(conn, draft, now)

        refreshed = conn.execute(select(clusters).where(clusters.c.id == current.id)).one()
        return _cluster_from_row(refreshed._mapping)

    def _upsert_summary(self, conn: Connection, draft: EnrichmentDraft, now: datetime) -> None:
        fields: Dict[str, Any] = {
            "summary_en": draft.summary_en,
            "summary_si": draft.summary_si,
            "summary_ta": draft.summary_ta,
            "key_facts_en": draft.key_facts_en or None,
            "key_facts_si": draft.key_facts_si or None,
            "key_facts_ta": draft.key_facts_ta or None,
            "confirmed_vs_differs_en": draft.confirmed_vs_differs_en,
            "confirmed_vs_differs_si": draft.confirmed_vs_differs_si,
            "confirmed_vs_differs_ta": draft.confirmed_vs_differs_ta,
        }
        present = {k: v for k, v in fields.items() if v}
        if not present:
            return
        if draft.summary_en:
            present["model"] = draft.summary_model
            present["prompt_version"] = draft.prompt_version

        stmt = self._insert(summaries).values(cluster_id=draft.cluster_id, version=1, updated_at=now, **present)
        update_set: Dict[str, Any] = {k: getattr(stmt.excluded, k) for k in present}
        update_set["updated_at"] = stmt.excluded.updated_at
        if draft.summary_en:
            update_set["version"] = summaries.c.version + 1
        stmt = stmt.on_conflict_do_update(index_elements=["cluster_id"], set_=update_set)
        conn.execute(stmt)

    # ---------------- Read API -----------------
    def list_published_clusters(
        self,
        *,
        topic: Optional[str] = None,
        since: Optional[datetime] = None,
        since_column: str = "last_seen_at",
        limit: int = 20,
    ) -> List[PublishedCluster]:
        now = self.clock()
        conditions = [clusters.c.status == ClusterStatus.PUBLISHED.value, clusters.c.expires_at >= now]
        if topic:
            conditions.append(clusters.c.topic == topic)
        order_col = clusters.c[since_column]
        if since is not None:
            conditions.append(order_col >= since)
        stmt = select(clusters).where(and_(*conditions)).order_by(order_col.desc()).limit(limit)

        def _read(conn: Connection) -> List[PublishedCluster]:
            found = [_cluster_from_row(r._mapping) for r in conn.execute(stmt)]
            if not found:
                return []
            ids = [c.id for c in found]
            summary_rows = conn.execute(select(summaries).where(summaries.c.cluster_id.in_(ids)))
            by_cluster = {r._mapping["cluster_id"]: _summary_from_row(r._mapping) for r in summary_rows}
            source_rows = conn.execute(
                select(articles.c.cluster_id, sources.c.name, sources.c.feed_url)
                .join(sources, sources.c.id == articles.c.source_id)
                .where(articles.c.cluster_id.in_(ids))
                .distinct()
            )
            sources_by_cluster: Dict[str, List[Dict[str, str]]] = {}
            for cluster_id, name, feed_url in source_rows:
                sources_by_cluster.setdefault(cluster_id, []).append({"name": name, "feed_url": feed_url})
            return [
                PublishedCluster(cluster=c, summary=by_cluster.get(c.id), sources=sources_by_cluster.get(c.id, []))
                for c in found
            ]

        return self.tx.read(_read)

    def get_published_cluster(self, cluster_id: str) -> Optional[PublishedCluster]:
        cluster = self.get_cluster(cluster_id)
        if cluster is None or cluster.status != ClusterStatus.PUBLISHED:
            return None
        linked = self.articles_for_cluster(cluster_id)
        source_ids = {a.source_id for a in linked}
        stmt = select(sources).where(sources.c.id.in_(source_ids)) if source_ids else None
        src_rows = self.tx.read(lambda conn: [_source_from_row(r._mapping) for r in conn.execute(stmt)]) if stmt is not None else []
        return PublishedCluster(
            cluster=cluster,
            summary=self.get_summary(cluster_id),
            sources=[{"name": s.name, "feed_url": s.feed_url} for s in src_rows],
            articles=linked,
        )

    # ---------------- Run bookkeeping -----------------
    def get_last_successful_run(self) -> Optional[datetime]:
        stmt = select(pipeline_settings.c.last_successful_run).where(pipeline_settings.c.name == SETTINGS_NAME)
        row = self.tx.read(lambda conn: conn.execute(stmt).first())
        return as_utc(row[0]) if row and row[0] else None

    def set_last_successful_run(self, timestamp: Optional[datetime] = None) -> None:
        ts = timestamp or self.clock()
        stmt = self._insert(pipeline_settings).values(name=SETTINGS_NAME, last_successful_run=ts, updated_at=ts)
        stmt = stmt.on_conflict_do_update(
            index_elements=["name"],
            set_={"last_successful_run": stmt.excluded.last_successful_run, "updated_at": stmt.excluded.updated_at},
        )
        self.tx.run(lambda conn: conn.execute(stmt), label="set_last_successful_run")

    def start_run(self) -> PipelineRun:
        run = PipelineRun(id=new_id(), status="started", started_at=self.clock())
        self.tx.run(
            lambda conn: conn.execute(
                pipeline_runs.insert().values(id=run.id, status=run.status, started_at=run.started_at)
            ),
            label="start_run",
        )
        return run

    def finish_run(self, run_id: str, status: str, notes: Optional[str] = None) -> None:
        stmt = (
            update(pipeline_runs)
            .where(pipeline_runs.c.id == run_id)
            .values(status=status, finished_at=self.clock(), notes=(notes or "")[:2000] or None)
        )
        self.tx.run(lambda conn: conn.execute(stmt), label="finish_run")

    def get_run(self, run_id: str) -> Optional[PipelineRun]:
        row = self.tx.read(lambda conn: conn.execute(select(pipeline_runs).where(pipeline_runs.c.id == run_id)).first())
        if row is None:
            return None
        m = row._mapping
        return PipelineRun(
            id=m["id"],
            status=m["status"],
            started_at=as_utc(m["started_at"]),
            finished_at=as_utc(m["finished_at"]),
            notes=m["notes"],
        )


__all__ = ["NewsStore", "PublishedCluster", "BatchResult", "new_id"]
