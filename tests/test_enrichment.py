"""Tests for the per-cluster tasks, the circuit breaker and the enrichment pool."""

import time

import pytest

from newsroom.models import ClusterStatus, EnrichmentDraft
from newsroom.pipeline.breaker import CircuitBreaker
from newsroom.pipeline.enrichment import EnrichmentOrchestrator
from newsroom.pipeline.metrics import MetricsCollector
from newsroom.processors.ai import AIAuthError, AITimeoutError
from newsroom.processors.tasks import EnrichmentTasks, TaskSkipped
from newsroom.utils.retry import RetryPolicy

from .conftest import FakeAIClient


def _clustered(store, source, seed_articles, titles, **kw):
    seed_articles(source, titles, **kw)
    cluster = store.create_cluster(titles[0])
    for article in store.claim_new_articles(len(titles)):
        store.attach_article(article.id, cluster.id)
    return cluster


def _orchestrator(store, ai, config, **kw):
    return EnrichmentOrchestrator(
        store,
        EnrichmentTasks(store, ai, config),
        workers=kw.pop("workers", 1),
        max_consecutive_failures=kw.pop("max_consecutive_failures", 5),
        task_policy=kw.pop("task_policy", RetryPolicy(attempts=1, base_delay=0, jitter=0)),
        metrics=kw.pop("metrics", None),
        sleep=lambda _: None,
    )


class TestCircuitBreaker:
    def test_opens_after_consecutive_failures_of_one_kind(self) -> None:
        breaker = CircuitBreaker(threshold=3)

        assert breaker.record_failure("summarize") is False
        assert breaker.record_failure("summarize") is False
        assert breaker.record_failure("summarize") is True
        assert breaker.is_open
        assert breaker.opened_by == "summarize"

    def test_success_resets_streak(self) -> None:
        breaker = CircuitBreaker(threshold=2)
        breaker.record_failure("seo")
        breaker.record_success("seo")
        breaker.record_failure("seo")

        assert not breaker.is_open
        assert breaker.streak("seo") == 1

    def test_kinds_are_counted_separately(self) -> None:
        breaker = CircuitBreaker(threshold=2)
        breaker.record_failure("seo")
        breaker.record_failure("image")

        assert not breaker.is_open


class TestEnrichmentTasks:
    def test_full_pass_publishes(self, store, source, seed_articles, config) -> None:
        cluster = _clustered(
            store, source, seed_articles, ["Fuel prices rise", "Fuel prices rise again"], image_url="https://cdn.x.lk/fuel.jpg"
        )

        report = _orchestrator(store, FakeAIClient(), config).run([cluster.id])

        saved = store.get_cluster(cluster.id)
        summary = store.get_summary(cluster.id)
        assert report.published == [cluster.id]
        assert saved.status == ClusterStatus.PUBLISHED
        assert saved.topic == "economy"
        assert saved.slug == "fuel-prices-rise-across-sri-lanka-after-monthly-revision"
        assert saved.headline_si == "translated headline"
        assert saved.meta_title_ta == "translated headline"
        assert saved.image_url == "https://cdn.x.lk/fuel.jpg"
        assert summary.summary_si == "translated summary"
        assert summary.prompt_version == "v1-title-excerpt"

    def test_unchanged_cluster_is_not_resummarized(self, store, source, seed_articles, config, clock) -> None:
        cluster = _clustered(store, source, seed_articles, ["Fuel prices rise"])
        ai = FakeAIClient()
        _orchestrator(store, ai, config).run([cluster.id])
        clock.advance(minutes=5)

        tasks = EnrichmentTasks(store, ai, config)
        work = tasks.load(cluster.id)

        with pytest.raises(TaskSkipped):
            tasks.categorize(work)
        with pytest.raises(TaskSkipped):
            tasks.summarize(work)
        with pytest.raises(TaskSkipped):
            tasks.translate(work)

    def test_cluster_with_new_articles_is_resummarized(self, store, source, seed_articles, config, clock) -> None:
        cluster = _clustered(store, source, seed_articles, ["Fuel prices rise"])
        ai = FakeAIClient()
        _orchestrator(store, ai, config).run([cluster.id])
        clock.advance(minutes=5)
        seed_articles(source, ["x", "Fuel prices rise again"])
        for article in store.claim_new_articles(5):
            store.attach_article(article.id, cluster.id)

        _orchestrator(store, ai, config).run([cluster.id])

        assert ai.count("summarize") == 2
        assert "Previous summary" in [c for c in ai.calls if c["task"] == "summarize"][-1]["prompt"]
        assert store.get_summary(cluster.id).version == 2

    def test_categorize_failure_falls_back_to_politics(self, store, source, seed_articles, config) -> None:
        cluster = _clustered(store, source, seed_articles, ["Budget debate"])
        ai = FakeAIClient({"categorize": AITimeoutError("slow")})

        report = _orchestrator(store, ai, config).run([cluster.id])

        saved = store.get_cluster(cluster.id)
        assert saved.topic == "politics"
        assert saved.status == ClusterStatus.PUBLISHED
        assert report.published == [cluster.id]

    def test_seo_failure_stores_fallback_meta(self, store, source, seed_articles, config) -> None:
        cluster = _clustered(store, source, seed_articles, ["Budget debate in parliament"])
        ai = FakeAIClient({"seo": "not json"})

        _orchestrator(store, ai, config).run([cluster.id])

        saved = store.get_cluster(cluster.id)
        assert saved.meta_title_en == "Budget debate in parliament"
        assert saved.slug == "budget-debate-parliament"

    def test_auth_errors_are_not_retried(self, store, source, seed_articles, config) -> None:
        cluster = _clustered(store, source, seed_articles, ["Budget debate"])
        ai = FakeAIClient({"categorize": AIAuthError("bad key", status_code=401)})
        policy = RetryPolicy(attempts=3, base_delay=0, jitter=0)

        _orchestrator(store, ai, config, task_policy=policy).run([cluster.id])

        assert ai.count("categorize") == 1

    def test_timeouts_are_retried(self, store, source, seed_articles, config) -> None:
        cluster = _clustered(store, source, seed_articles, ["Budget debate"])
        ai = FakeAIClient({"summarize": AITimeoutError("slow")})
        policy = RetryPolicy(attempts=3, base_delay=0, jitter=0)

        _orchestrator(store, ai, config, task_policy=policy).run([cluster.id])

        assert ai.count("summarize") == 3


class TestEnrichmentOrchestrator:
    def test_summary_timeout_keeps_topic_and_leaves_draft(self, store, source, seed_articles, config) -> None:
        cluster = _clustered(store, source, seed_articles, ["Fuel prices rise"])
        metrics = MetricsCollector()
        ai = FakeAIClient({"summarize": AITimeoutError("LLM request timed out after 30s")})

        report = _orchestrator(store, ai, config, metrics=metrics).run([cluster.id])

        saved = store.get_cluster(cluster.id)
        assert saved.topic == "economy"
        assert saved.status == ClusterStatus.DRAFT
        assert store.get_summary(cluster.id) is None
        assert report.drafts == [cluster.id]
        stats = metrics.to_dict()
        assert stats["tasks"]["summarize"]["failed"] == 1
        assert stats["tasks"]["categorize"]["successful"] == 1
        assert any(e["task"] == "summarize" and "timed out" in e["message"] for e in stats["errors"])

    def test_breaker_defers_remaining_clusters(self, store, source, seed_articles, config) -> None:
        ids = []
        for i in range(6):
            seed_articles(source, [f"Unrelated story number {i}"])
            cluster = store.create_cluster(f"Unrelated story number {i}")
            store.attach_article(store.claim_new_articles(1)[0].id, cluster.id)
            ids.append(cluster.id)
        ai = FakeAIClient({"summarize": AITimeoutError("slow")})

        report = _orchestrator(store, ai, config, max_consecutive_failures=2).run(ids)

        assert report.breaker_opened_by == "summarize"
        assert len(report.processed) == 2
        assert len(report.deferred) == 4
        assert ai.count("summarize") == 2
        # Deferred clusters stay drafts and are picked up by the next run
        assert all(store.get_cluster(i).status == ClusterStatus.DRAFT for i in report.deferred)

    def test_deadline_stops_new_clusters(self, store, config) -> None:
        ids = [store.create_cluster(f"Story {i}").id for i in range(3)]

        report = _orchestrator(store, FakeAIClient(), config).run(ids, deadline=time.monotonic() - 1)

        assert report.deadline_hit
        assert report.deferred == ids
        assert report.processed == []

    def test_missing_cluster_is_isolated(self, store, source, seed_articles, config) -> None:
        cluster = _clustered(store, source, seed_articles, ["Fuel prices rise"])

        report = _orchestrator(store, FakeAIClient(), config).run(["missing-id", cluster.id])

        assert report.failed == ["missing-id"]
        assert report.published == [cluster.id]

    def test_parallel_workers_process_every_cluster(self, file_engine, clock, config) -> None:
        from newsroom.storage import NewsStore, TransactionManager

        store = NewsStore(file_engine, TransactionManager(file_engine, sleep=lambda _: None), clock=clock)
        ids = [store.create_cluster(f"Story {i}").id for i in range(6)]
        store.save_enrichment(EnrichmentDraft(cluster_id=ids[0], category="sports"))

        # Clusters without articles fail summarization; keep the breaker out of the way
        report = _orchestrator(store, FakeAIClient(), config, workers=3, max_consecutive_failures=100).run(ids)

        assert sorted(report.processed) == sorted(ids)
        assert report.deferred == []
