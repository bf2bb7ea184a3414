"""Tests for the concurrent feed pool and domain allow-listing."""

import threading
import time

import pytest

from newsroom.fetchers import FeedPool, url_in_domain
from newsroom.fetchers.rss import FeedFormatError, FeedHttpError
from newsroom.utils.retry import NO_RETRY

from .conftest import make_item, make_source


class TestUrlInDomain:
    @pytest.mark.parametrize(
        "url,expected",
        [
            ("https://dailymirror.lk/news/1", True),
            ("https://www.dailymirror.lk/news/1", True),
            ("https://sinhala.dailymirror.lk/news/1", True),
            ("https://notdailymirror.lk/news/1", False),
            ("https://dailymirror.lk.evil.com/news/1", False),
            ("not a url", False),
        ],
    )
    def test_matches_domain_and_subdomains(self, url, expected) -> None:
        assert url_in_domain(url, "dailymirror.lk") is expected


class TestFeedPool:
    def test_html_feed_fails_alone(self) -> None:
        good = make_source("Daily Mirror")
        other = make_source("Ada Derana", domain="adaderana.lk")
        broken = make_source("Broken Feed", domain="broken.lk")

        def fetcher(source, *, timeout, policy, limit):
            if source is broken:
                raise FeedFormatError("html_instead_of_xml")
            return [make_item(f"{source.name} story", domain=source.base_domain)]

        results = {r.source.name: r for r in FeedPool(fetcher=fetcher).fetch_all([good, other, broken])}

        assert results["Broken Feed"].reason == "html_instead_of_xml"
        assert not results["Broken Feed"].ok
        assert results["Daily Mirror"].ok and len(results["Daily Mirror"].items) == 1
        assert results["Ada Derana"].ok and len(results["Ada Derana"].items) == 1

    def test_unexpected_errors_are_contained(self) -> None:
        def fetcher(source, **_):
            raise RuntimeError("boom")

        [result] = FeedPool(fetcher=fetcher).fetch_all([make_source()])

        assert result.reason == "fetch_error"
        assert result.error == "boom"

    def test_http_error_reason(self) -> None:
        def fetcher(source, **_):
            raise FeedHttpError(503)

        [result] = FeedPool(fetcher=fetcher).fetch_all([make_source()])

        assert result.reason == "http_error"
        assert result.error == "Status code 503"

    def test_off_domain_items_are_dropped(self) -> None:
        src = make_source()

        def fetcher(source, **_):
            return [
                make_item("Home story"),
                make_item("Syndicated story", domain="elsewhere.com"),
            ]

        [result] = FeedPool(fetcher=fetcher).fetch_all([src])

        assert [i.title for i in result.items] == ["Home story"]
        assert result.dropped_off_domain == 1

    def test_skips_inactive_and_disabled_sources(self) -> None:
        seen = []

        def fetcher(source, **_):
            seen.append(source.name)
            return []

        sources = [
            make_source("Live"),
            make_source("Inactive", active=False),
            make_source("Disabled", enabled=False),
        ]
        FeedPool(fetcher=fetcher).fetch_all(sources)

        assert seen == ["Live"]

    def test_passes_limit_and_policy(self) -> None:
        calls = []

        def fetcher(source, *, timeout, policy, limit):
            calls.append((timeout, policy, limit))
            return []

        FeedPool(timeout=7.0, fetcher=fetcher).fetch_all([make_source()], limit=10, policy=NO_RETRY)

        assert calls == [(7.0, NO_RETRY, 10)]

    def test_per_language_concurrency_cap(self) -> None:
        lock = threading.Lock()
        active = {"en": 0, "si": 0}
        peak = {"en": 0, "si": 0}

        def fetcher(source, **_):
            with lock:
                active[source.language] += 1
                peak[source.language] = max(peak[source.language], active[source.language])
            time.sleep(0.02)
            with lock:
                active[source.language] -= 1
            return []

        sources = [make_source(f"EN {i}") for i in range(6)] + [
            make_source(f"SI {i}", language="si") for i in range(6)
        ]
        FeedPool(workers=12, per_language=2, fetcher=fetcher).fetch_all(sources)

        assert peak["en"] <= 2
        assert peak["si"] <= 2
