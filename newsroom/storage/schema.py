"""Table definitions for the pipeline store.

Portable between SQLite (local runs, tests) and PostgreSQL (production).
List-valued columns use the generic ``JSON`` type.
"""

from __future__ import annotations

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
)

metadata = MetaData()

sources = Table(
    "sources",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(200), nullable=False),
    Column("feed_url", String(1000), nullable=False, unique=True),
    Column("base_domain", String(255), nullable=False),
    Column("language", String(8), nullable=False, default="en"),
    Column("active", Boolean, nullable=False, default=True),
    Column("enabled", Boolean, nullable=False, default=True),
)

clusters = Table(
    "clusters",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("headline", Text, nullable=False),
    Column("headline_si", Text),
    Column("headline_ta", Text),
    Column("slug", String(200), unique=True),
    Column("topic", String(50)),
    Column("topics", JSON),
    Column("category", String(50)),
    Column("city", String(100)),
    Column("language", String(8), nullable=False, default="en"),
    Column("status", String(16), nullable=False, default="draft"),
    Column("source_count", Integer, nullable=False, default=0),
    Column("article_count", Integer, nullable=False, default=0),
    Column("first_seen_at", DateTime(timezone=True)),
    Column("last_seen_at", DateTime(timezone=True)),
    Column("published_at", DateTime(timezone=True)),
    Column("expires_at", DateTime(timezone=True)),
    Column("image_url", Text),
    Column("meta_title_en", String(200)),
    Column("meta_description_en", String(400)),
    Column("meta_title_si", String(200)),
    Column("meta_description_si", String(400)),
    Column("meta_title_ta", String(200)),
    Column("meta_description_ta", String(400)),
    Column("keywords", JSON),
    Column("updated_at", DateTime(timezone=True)),
    Index("ix_clusters_status_last_seen", "status", "last_seen_at"),
)

articles = Table(
    "articles",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("source_id", String(36), ForeignKey("sources.id"), nullable=False),
    Column("title", Text, nullable=False),
    Column("url", Text, nullable=False),
    Column("guid", Text),
    Column("hash", String(32), nullable=False, unique=True),
    Column("content_excerpt", Text),
    Column("content_text", Text),
    Column("image_url", Text),
    Column("published_at", DateTime(timezone=True)),
    Column("lang", String(8), nullable=False, default="en"),
    Column("status", String(16), nullable=False, default="new"),
    Column("cluster_id", String(36), ForeignKey("clusters.id")),
    Column("error_message", Text),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("processed_at", DateTime(timezone=True)),
    Index("ix_articles_status_created", "status", "created_at"),
    Index("ix_articles_cluster", "cluster_id"),
)

summaries = Table(
    "summaries",
    metadata,
    Column("cluster_id", String(36), ForeignKey("clusters.id"), primary_key=True),
    Column("summary_en", Text),
    Column("summary_si", Text),
    Column("summary_ta", Text),
    Column("key_facts_en", JSON),
    Column("key_facts_si", JSON),
    Column("key_facts_ta", JSON),
    Column("confirmed_vs_differs_en", Text),
    Column("confirmed_vs_differs_si", Text),
    Column("confirmed_vs_differs_ta", Text),
    Column("model", String(100)),
    Column("prompt_version", String(50)),
    Column("version", Integer, nullable=False, default=1),
    Column("updated_at", DateTime(timezone=True)),
)

pipeline_lock = Table(
    "pipeline_lock",
    metadata,
    Column("name", String(100), primary_key=True),
    Column("holder", String(64)),
    Column("acquired_at", DateTime(timezone=True)),
    Column("expires_at", DateTime(timezone=True), nullable=False),
)

pipeline_settings = Table(
    "pipeline_settings",
    metadata,
    Column("name", String(50), primary_key=True),
    Column("last_successful_run", DateTime(timezone=True)),
    Column("updated_at", DateTime(timezone=True)),
)

pipeline_runs = Table(
    "pipeline_runs",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("status", String(16), nullable=False),
    Column("started_at", DateTime(timezone=True), nullable=False),
    Column("finished_at", DateTime(timezone=True)),
    Column("notes", Text),
)
