"""Tests for NewsStore: claiming, clustering writes, enrichment persistence and reads."""

from datetime import timedelta

from newsroom.models import ArticleStatus, ClusterStatus, EnrichmentDraft

from .conftest import make_source


class TestClaim:
    def test_claims_oldest_new_articles(self, store, source, seed_articles, clock) -> None:
        seed_articles(source, ["First"])
        clock.advance(minutes=1)
        seed_articles(source, ["x", "Second"])

        claimed = store.claim_new_articles(2)

        assert [a.title for a in claimed][0] == "First"
        assert all(a.status == ArticleStatus.PROCESSING for a in claimed)
        assert store.count_articles_by_status()["processing"] == 2

    def test_claim_never_returns_an_article_twice(self, store, source, seed_articles) -> None:
        seed_articles(source, [f"Story {i}" for i in range(5)])

        first = store.claim_new_articles(3)
        second = store.claim_new_articles(3)

        assert len(first) == 3
        assert len(second) == 2
        assert not {a.id for a in first} & {a.id for a in second}
        assert store.claim_new_articles(3) == []

    def test_zero_limit(self, store) -> None:
        assert store.claim_new_articles(0) == []


class TestClusterWrites:
    def test_attach_marks_processed_and_recounts(self, store, source, seed_articles, clock) -> None:
        other = make_source("Ada Derana", domain="adaderana.lk")
        store.upsert_sources([other])
        seed_articles(source, ["Story A"])
        seed_articles(other, ["Story A again"])
        a, b = store.claim_new_articles(2)
        cluster = store.create_cluster("Story A")
        clock.advance(minutes=5)

        store.attach_article(a.id, cluster.id)
        updated = store.attach_article(b.id, cluster.id)

        assert updated.article_count == 2
        assert updated.source_count == 2
        assert updated.last_seen_at == clock.now
        assert store.get_article(a.id).status == ArticleStatus.PROCESSED
        assert store.get_article(a.id).cluster_id == cluster.id

    def test_attach_requires_processing(self, store, source, seed_articles) -> None:
        seed_articles(source, ["Story"])
        cluster = store.create_cluster("Story")
        article_id = store.claim_new_articles(1)[0].id
        store.mark_article_failed(article_id, "bad")

        assert store.attach_article(article_id, cluster.id) is None
        assert store.get_article(article_id).status == ArticleStatus.FAILED

    def test_new_cluster_is_draft_with_ttl(self, store, clock) -> None:
        cluster = store.create_cluster("Headline", ttl=timedelta(days=30))

        assert cluster.status == ClusterStatus.DRAFT
        assert cluster.expires_at == clock.now + timedelta(days=30)
        assert store.clusters_needing_enrichment(clock.now - timedelta(hours=24)) == [cluster.id]


class TestSaveEnrichment:
    def test_publishes_with_category_and_summary(self, store, clock) -> None:
        cluster = store.create_cluster("Fuel prices rise")
        draft = EnrichmentDraft(cluster_id=cluster.id, category="economy", summary_en="Prices rose.", slug="fuel-prices-rise")

        saved = store.save_enrichment(draft)

        assert saved.status == ClusterStatus.PUBLISHED
        assert saved.topic == "economy"
        assert saved.topics == ["economy"]
        assert saved.published_at == clock.now
        assert saved.slug == "fuel-prices-rise"

    def test_stays_draft_without_summary(self, store) -> None:
        cluster = store.create_cluster("Fuel prices rise")

        saved = store.save_enrichment(EnrichmentDraft(cluster_id=cluster.id, category="economy"))

        assert saved.status == ClusterStatus.DRAFT
        assert saved.topic == "economy"
        assert store.get_summary(cluster.id) is None

    def test_partial_draft_keeps_earlier_fields(self, store) -> None:
        cluster = store.create_cluster("Fuel prices rise")
        store.save_enrichment(
            EnrichmentDraft(cluster_id=cluster.id, category="economy", summary_en="Prices rose.", image_url="https://x.lk/a.jpg")
        )

        saved = store.save_enrichment(EnrichmentDraft(cluster_id=cluster.id, summary_si="si text"))

        assert saved.image_url == "https://x.lk/a.jpg"
        summary = store.get_summary(cluster.id)
        assert summary.summary_en == "Prices rose."
        assert summary.summary_si == "si text"
        assert summary.version == 1

    def test_summary_version_increments_on_new_english_text(self, store) -> None:
        cluster = store.create_cluster("Story")
        for text in ("v1", "v2"):
            store.save_enrichment(
                EnrichmentDraft(cluster_id=cluster.id, summary_en=text, summary_model="m", prompt_version="p")
            )

        summary = store.get_summary(cluster.id)
        assert summary.version == 2
        assert summary.summary_en == "v2"
        assert summary.model == "m"

    def test_slug_collision_gets_id_suffix(self, store) -> None:
        first = store.create_cluster("One")
        second = store.create_cluster("Two")
        store.save_enrichment(EnrichmentDraft(cluster_id=first.id, slug="same-slug"))

        saved = store.save_enrichment(EnrichmentDraft(cluster_id=second.id, slug="same-slug"))

        assert saved.slug == f"same-slug-{second.id[:8]}"

    def test_existing_slug_is_never_replaced(self, store) -> None:
        cluster = store.create_cluster("One")
        store.save_enrichment(EnrichmentDraft(cluster_id=cluster.id, slug="original"))

        saved = store.save_enrichment(EnrichmentDraft(cluster_id=cluster.id, slug="changed"))

        assert saved.slug == "original"

    def test_duplicate_meta_title_is_made_unique(self, store) -> None:
        first = store.create_cluster("One")
        second = store.create_cluster("Two")
        store.save_enrichment(EnrichmentDraft(cluster_id=first.id, meta_title_en="Same title"))

        saved = store.save_enrichment(EnrichmentDraft(cluster_id=second.id, meta_title_en="Same title"))

        assert saved.meta_title_en == f"Same title | {second.id[:8]}"

    def test_published_at_uses_earliest_article_time_once(self, store, clock) -> None:
        cluster = store.create_cluster("Story")
        earlier = clock.now - timedelta(hours=3)
        store.save_enrichment(
            EnrichmentDraft(cluster_id=cluster.id, category="politics", summary_en="s", published_at=earlier)
        )

        saved = store.save_enrichment(
            EnrichmentDraft(cluster_id=cluster.id, summary_en="s2", published_at=clock.now)
        )

        assert saved.published_at == earlier


class TestReadModel:
    def _publish(self, store, headline: str, **kw):
        cluster = store.create_cluster(headline)
        store.save_enrichment(EnrichmentDraft(cluster_id=cluster.id, category=kw.get("category", "economy"), summary_en="s"))
        return cluster

    def test_lists_only_published_unexpired(self, store, clock) -> None:
        published = self._publish(store, "Published")
        store.create_cluster("Draft")
        self._publish(store, "Expired")
        clock.advance(days=29)
        fresh = self._publish(store, "Fresh")
        clock.advance(days=2)

        ids = [p.cluster.id for p in store.list_published_clusters()]

        assert ids == [fresh.id]
        assert published.id not in ids

    def test_filters_by_topic_and_attaches_sources(self, store, source, seed_articles) -> None:
        seed_articles(source, ["Budget"])
        cluster = self._publish(store, "Budget", category="politics")
        self._publish(store, "Markets", category="economy")
        store.attach_article(store.claim_new_articles(1)[0].id, cluster.id)

        [item] = store.list_published_clusters(topic="politics")

        assert item.cluster.id == cluster.id
        assert item.summary.summary_en == "s"
        assert item.sources == [{"name": source.name, "feed_url": source.feed_url}]

    def test_get_published_cluster_includes_articles(self, store, source, seed_articles) -> None:
        seed_articles(source, ["Budget"])
        cluster = self._publish(store, "Budget")
        store.attach_article(store.claim_new_articles(1)[0].id, cluster.id)
        draft = store.create_cluster("Draft")

        item = store.get_published_cluster(cluster.id)

        assert [a.title for a in item.articles] == ["Budget"]
        assert store.get_published_cluster(draft.id) is None


class TestRunBookkeeping:
    def test_last_successful_run_round_trip(self, store, clock) -> None:
        assert store.get_last_successful_run() is None

        store.set_last_successful_run()

        assert store.get_last_successful_run() == clock.now

    def test_run_records(self, store) -> None:
        run = store.start_run()
        store.finish_run(run.id, "success", "done")

        finished = store.get_run(run.id)
        assert finished.status == "success"
        assert finished.notes == "done"
        assert finished.finished_at is not None
