"""News content pipeline: fetch feeds, deduplicate, cluster and enrich stories."""

__version__ = "0.1.0"
