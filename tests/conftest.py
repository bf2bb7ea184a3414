"""Shared fixtures: SQLite stores, a settable clock, a scripted AI client and feed helpers."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

import pytest

from newsroom.fetchers.rss import FeedItem
from newsroom.models import NewArticle, Source
from newsroom.processors.ai import AIClient
from newsroom.processors.classify import CATEGORY_SYSTEM_PROMPT
from newsroom.processors.dedup import make_article_hash
from newsroom.processors.images import IMAGE_SYSTEM_PROMPT
from newsroom.processors.seo import SEO_SYSTEM_PROMPT
from newsroom.processors.summarize import SUMMARY_SYSTEM_PROMPT
from newsroom.processors.translate import TRANSLATE_SYSTEM_PROMPT
from newsroom.storage import NewsStore, TransactionManager, create_db_engine, init_db
from newsroom.utils.pipeline_config import PipelineConfig


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2025, 1, 15, 8, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeAIClient(AIClient):
    """Scripted client that answers per task, keyed on the system prompt.

    A response may be a string, an exception instance (raised on every call)
    or a callable taking the prompt.
    """

    TASK_BY_SYSTEM = {
        CATEGORY_SYSTEM_PROMPT: "categorize",
        SUMMARY_SYSTEM_PROMPT: "summarize",
        SEO_SYSTEM_PROMPT: "seo",
        TRANSLATE_SYSTEM_PROMPT: "translate",
        IMAGE_SYSTEM_PROMPT: "image",
    }

    def __init__(self, responses: Optional[Dict[str, object]] = None) -> None:
        self.responses: Dict[str, object] = {
            "categorize": "economy",
            "summarize": "Fuel prices rose on Monday. The Ministry confirmed the revision in Colombo.",
            "seo": json.dumps(
                {
                    "seo_title": "Fuel prices rise across Sri Lanka after monthly revision",
                    "meta_description": "The energy ministry confirmed a fuel price revision that takes effect today.",
                    "topics": ["sri lanka", "economy"],
                    "city": "Colombo",
                    "keywords": ["fuel", "prices"],
                    "key_facts": ["Prices rose", "Revision is monthly"],
                    "confirmed_vs_differs": "All sources agree on the increase.",
                }
            ),
            "translate": json.dumps(
                {
                    "headline": "translated headline",
                    "summary": "translated summary",
                    "key_facts": ["fact"],
                    "confirmed_vs_differs": None,
                }
            ),
            "image": '{"index": 0, "reason": "news photo"}',
        }
        if responses:
            self.responses.update(responses)
        self.calls: List[Dict[str, object]] = []

    def complete(self, prompt, *, system=None, model=None, temperature=0.2, max_tokens=None, timeout=30.0):
        task = self.TASK_BY_SYSTEM.get(system or "", "unknown")
        self.calls.append({"task": task, "prompt": prompt, "model": model, "timeout": timeout})
        response = self.responses.get(task, "")
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            return response(prompt)
        return str(response)

    def count(self, task: str) -> int:
        return sum(1 for c in self.calls if c["task"] == task)


def make_source(name: str = "Daily Mirror", *, language: str = "en", domain: str = "dailymirror.lk", **kw) -> Source:
    return Source(
        id=kw.pop("id", f"src-{name.lower().replace(' ', '-')}"),
        name=name,
        feed_url=kw.pop("feed_url", f"https://www.{domain}/rss/{name.lower().replace(' ', '-')}"),
        base_domain=domain,
        language=language,
        **kw,
    )


def make_item(title: str, *, domain: str = "dailymirror.lk", slug: Optional[str] = None, **kw) -> FeedItem:
    path = slug or title.lower().replace(" ", "-")
    return FeedItem(title=title, url=kw.pop("url", f"https://www.{domain}/news/{path}"), **kw)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def engine():
    eng = create_db_engine("sqlite://")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def file_engine(tmp_path):
    eng = create_db_engine(f"sqlite:///{tmp_path / 'newsroom.db'}")
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def transactions(engine) -> TransactionManager:
    return TransactionManager(engine, chunk_size=50, sleep=lambda _: None)


@pytest.fixture
def store(engine, transactions, clock) -> NewsStore:
    return NewsStore(engine, transactions, clock=clock)


@pytest.fixture
def source(store) -> Source:
    src = make_source()
    store.upsert_sources([src])
    return src


@pytest.fixture
def fake_ai() -> FakeAIClient:
    return FakeAIClient()


@pytest.fixture
def config() -> PipelineConfig:
    return PipelineConfig(
        database_url="sqlite://",
        cron_secret="s3cret",
        parallel_cluster_workers=1,
        task_retries=0,
        task_backoff=0.0,
    )


@pytest.fixture
def seed_articles(store) -> Callable[..., List[NewArticle]]:
    """Insert ``NewArticle`` rows directly, bypassing fetch and dedup."""

    def _seed(source: Source, titles: List[str], **kw) -> List[NewArticle]:
        rows = [
            NewArticle(
                source_id=source.id,
                title=title,
                url=f"https://www.{source.base_domain}/news/{idx}",
                hash=make_article_hash(f"https://www.{source.base_domain}/news/{idx}", None, title),
                content_excerpt=kw.get("excerpt", f"{title}. Details follow."),
                image_url=kw.get("image_url"),
                published_at=kw.get("published_at"),
                lang=source.language,
            )
            for idx, title in enumerate(titles)
        ]
        store.tx.run(lambda conn: store.insert_new_articles(conn, rows))
        return rows

    return _seed
