"""Tests for the text processors and the LLM-backed enrichment helpers."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from newsroom.models import Article, ArticleStatus
from newsroom.processors.ai import AIError
from newsroom.processors.ai.parsing import parse_index, parse_json_object, string_list
from newsroom.processors.classify import categorize_articles, parse_category
from newsroom.processors.images import choose_image, filter_image_candidates, is_content_image
from newsroom.processors.normalize import detect_language, make_excerpt, normalize_plain_text
from newsroom.processors.seo import fallback_meta, generate_seo, generate_slug
from newsroom.processors.summarize import select_summary_articles, summarize_articles
from newsroom.processors.topics import normalize_topic_slug, normalize_topics, topic_label
from newsroom.processors.translate import translate_story

from .conftest import FakeAIClient

T0 = datetime(2025, 1, 15, 8, 0, tzinfo=timezone.utc)


def _article(title: str, *, hours_ago: int = 0, image_url=None) -> Article:
    return Article(
        id=f"a-{title}",
        source_id="s",
        title=title,
        url=f"https://x.lk/{title}",
        hash=title,
        status=ArticleStatus.PROCESSED,
        content_excerpt=f"{title} excerpt",
        image_url=image_url,
        published_at=T0 - timedelta(hours=hours_ago),
    )


class TestNormalize:
    def test_plain_text_cleanup(self) -> None:
        assert normalize_plain_text("\ufeff\u201cQuoted\u201d\u00a0text \u2013 here\x07") == '"Quoted" text - here'

    @pytest.mark.parametrize(
        "text,lang",
        [
            ("Fuel prices rise", "en"),
            ("\u0d89\u0db1\u0dca\u0db0\u0db1", "si"),
            ("\u0b8e\u0bb0\u0bbf\u0baa\u0bca\u0bb0\u0bc1\u0bb3\u0bcd", "ta"),
            ("   ", "unk"),
            (None, "unk"),
        ],
    )
    def test_detect_language(self, text, lang) -> None:
        assert detect_language(text) == lang

    def test_excerpt_cuts_on_word_boundary(self) -> None:
        excerpt = make_excerpt("word " * 200, max_chars=20)

        assert excerpt == "word word word word..."


class TestTopics:
    @pytest.mark.parametrize(
        "raw,slug",
        [("tech", "technology"), ("Sri Lanka", "sri-lanka"), ("  Economy ", "economy"), ("gossip", None), (None, None)],
    )
    def test_normalize_topic_slug(self, raw, slug) -> None:
        assert normalize_topic_slug(raw) == slug

    def test_normalize_topics_dedupes_and_drops_invalid(self) -> None:
        assert normalize_topics(["sri lanka", "economy", "econ", "gossip"]) == ["sri-lanka", "economy"]

    def test_label(self) -> None:
        assert topic_label("sri-lanka") == "Sri Lanka"


class TestParsing:
    def test_json_inside_prose(self) -> None:
        assert parse_json_object('Sure! ```json\n{"a": 1}\n```') == {"a": 1}

    def test_no_json_raises(self) -> None:
        with pytest.raises(ValueError):
            parse_json_object("no json here")

    def test_string_list_accepts_csv(self) -> None:
        assert string_list("fuel, prices,fuel") == ["fuel", "prices"]

    def test_parse_index(self) -> None:
        assert parse_index('{"index": 2}', upper=3) == 2
        assert parse_index("1", upper=3) == 1
        with pytest.raises(ValueError):
            parse_index('{"index": 5}', upper=3)


class TestCategorize:
    @pytest.mark.parametrize("raw,category", [("economy", "economy"), ("Sports.", "sports"), ("Technology news", "technology"), ("weather", None)])
    def test_parse_category(self, raw, category) -> None:
        assert parse_category(raw) == category

    def test_unrecognized_reply_defaults_to_politics(self) -> None:
        ai = FakeAIClient({"categorize": "weather"})

        assert categorize_articles([_article("Rain")], ai=ai) == "politics"

    def test_transport_errors_propagate(self) -> None:
        ai = FakeAIClient({"categorize": AIError("down")})

        with pytest.raises(AIError):
            categorize_articles([_article("Rain")], ai=ai)

    def test_uses_category_timeout(self) -> None:
        ai = FakeAIClient()

        categorize_articles([_article("Budget")], ai=ai, timeout=15.0)

        assert ai.calls[0]["timeout"] == 15.0


class TestSummarize:
    def test_selects_newest_unique_titles(self) -> None:
        articles = [_article("Old", hours_ago=5), _article("New", hours_ago=1), _article("new ", hours_ago=0)]

        picked = select_summary_articles(articles, max_articles=5)

        assert [a.title for a in picked] == ["new ", "Old"]

    def test_includes_previous_summary_for_updates(self) -> None:
        ai = FakeAIClient()

        summarize_articles([_article("Budget")], ai=ai, previous="Earlier text")

        assert "Previous summary:\nEarlier text" in ai.calls[0]["prompt"]

    def test_empty_reply_is_an_error(self) -> None:
        with pytest.raises(ValueError):
            summarize_articles([_article("Budget")], ai=FakeAIClient({"summarize": "   "}))


class TestSeo:
    def test_slug(self) -> None:
        assert generate_slug("The President's visit to Jaffna, in 2025!") == "presidents-visit-jaffna-2025"

    def test_slug_limits_words(self) -> None:
        assert generate_slug(" ".join(f"w{i}" for i in range(20))).count("-") == 8

    def test_fallback_meta(self) -> None:
        title, description = fallback_meta("h" * 80, "s" * 200)

        assert len(title) == 60
        assert len(description) == 160

    def test_generate_seo_parses_and_normalizes(self) -> None:
        result = generate_seo("Fuel prices rise", "Prices rose.", [_article("Fuel")], ai=FakeAIClient(), category="economy")

        assert result.title == "Fuel prices rise across Sri Lanka after monthly revision"
        assert result.slug == "fuel-prices-rise-across-sri-lanka-after-monthly-revision"
        assert result.topics == ["economy", "sri-lanka"]
        assert result.city == "Colombo"
        assert result.key_facts == ["Prices rose", "Revision is monthly"]

    def test_generate_seo_fills_missing_fields(self) -> None:
        ai = FakeAIClient({"seo": json.dumps({"topics": ["world"]})})

        result = generate_seo("Fuel prices rise", "Prices rose.", [], ai=ai, category="economy")

        assert result.title == "Fuel prices rise"
        assert result.description == "Prices rose."
        assert result.keywords == ["Sri Lanka", "economy"]


class TestTranslate:
    def test_translation(self) -> None:
        result = translate_story("si", "Headline", "Summary", ai=FakeAIClient(), key_facts=["f"])

        assert result.summary == "translated summary"
        assert result.headline == "translated headline"

    def test_missing_summary_raises(self) -> None:
        ai = FakeAIClient({"translate": json.dumps({"headline": "h"})})

        with pytest.raises(ValueError):
            translate_story("ta", "Headline", "Summary", ai=ai)

    def test_unsupported_language(self) -> None:
        with pytest.raises(ValueError):
            translate_story("fr", "Headline", "Summary", ai=FakeAIClient())


class TestImages:
    @pytest.mark.parametrize(
        "url,ok",
        [
            ("https://cdn.x.lk/news/fuel-queue.jpg", True),
            ("https://cdn.x.lk/logo.png", False),
            ("https://cdn.x.lk/img/photo-50x50.jpg", False),
            ("https://cdn.x.lk/facebook-share.jpg", False),
            ("ftp://cdn.x.lk/a.jpg", False),
            ("https://cdn.x.lk/news/kuwait-migrant-workers.jpg", True),
            ("https://cdn.x.lk/news/road-accident-kandy.jpg", True),
            ("https://cdn.x.lk/share/images/2025/flood-relief.jpg", True),
            ("https://www.x.lk/sites/default/files/2025-01/budget-debate.jpg", True),
            ("https://cdn.x.lk/img/no-image.png", False),
            ("https://cdn.x.lk/img/ad-300x250.jpg", False),
            ("https://cdn.x.lk/ads/summer-sale.jpg", False),
            ("https://cdn.x.lk/img/loading.gif", False),
            ("https://cdn.x.lk/img/1x1.gif", False),
        ],
    )
    def test_is_content_image(self, url, ok) -> None:
        assert is_content_image(url) is ok

    def test_filter_dedupes(self) -> None:
        urls = ["https://x.lk/a.jpg", None, "https://x.lk/a.jpg", "https://x.lk/logo.png"]

        assert filter_image_candidates(urls) == ["https://x.lk/a.jpg"]

    def test_single_candidate_skips_model(self) -> None:
        ai = FakeAIClient()

        assert choose_image(["https://x.lk/a.jpg"], "h", "s", ai=ai) == "https://x.lk/a.jpg"
        assert ai.calls == []

    def test_model_picks_index(self) -> None:
        ai = FakeAIClient({"image": '{"index": 1}'})

        assert choose_image(["https://x.lk/a.jpg", "https://x.lk/b.jpg"], "h", "s", ai=ai) == "https://x.lk/b.jpg"
