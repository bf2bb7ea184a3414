"""HTTP surface: the authenticated cron trigger and the read API for published clusters."""

from __future__ import annotations

import secrets
from datetime import timedelta
from typing import Any, Callable, Dict, Optional, Union

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from .context import AppContext, build_context
from .processors.topics import normalize_topic_slug, topic_label
from .storage.store import PublishedCluster
from .utils.clock import iso
from .utils.logging import get_logger

logger = get_logger("newsroom.api")

MAX_PAGE_SIZE = 50
HOME_WINDOW = timedelta(hours=24)
RECENT_WINDOW = timedelta(days=30)


def _context(request: Request) -> AppContext:
    return request.app.state.ctx


def require_cron_secret(request: Request, authorization: Optional[str] = Header(default=None)) -> None:
    expected = _context(request).config.cron_secret
    if not expected or not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Unauthorized")
    token = authorization.split(" ", 1)[1].strip()
    if not secrets.compare_digest(token.encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(status_code=401, detail="Unauthorized")


def _is_truthy(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in ("1", "true")


def _cluster_payload(item: PublishedCluster, lang: str, *, with_articles: bool = False) -> Dict[str, Any]:
    c = item.cluster
    s = item.summary
    if lang == "si":
        meta_title, meta_description = c.meta_title_si, c.meta_description_si
    elif lang == "ta":
        meta_title, meta_description = c.meta_title_ta, c.meta_description_ta
    else:
        meta_title, meta_description = c.meta_title_en, c.meta_description_en
    payload: Dict[str, Any] = {
        "id": c.id,
        "slug": c.slug,
        "headline": c.headline_for(lang),
        "summary": (s.text_for(lang) or s.summary_en) if s else None,
        "key_facts": (getattr(s, f"key_facts_{lang}") or s.key_facts_en) if s else [],
        "confirmed_vs_differs": getattr(s, f"confirmed_vs_differs_{lang}") if s else None,
        "topic": c.topic,
        "topic_label": topic_label(c.topic) if c.topic else None,
        "topics": c.topics,
        "city": c.city,
        "image_url": c.image_url,
        "meta_title": meta_title or c.meta_title_en,
        "meta_description": meta_description or c.meta_description_en,
        "keywords": c.keywords,
        "source_count": c.source_count,
        "article_count": c.article_count,
        "first_seen_at": iso(c.first_seen_at),
        "last_seen_at": iso(c.last_seen_at),
        "published_at": iso(c.published_at),
        "sources": item.sources,
    }
    if with_articles:
        payload["articles"] = [
            {
                "id": a.id,
                "title": a.title,
                "url": a.url,
                "lang": a.lang,
                "image_url": a.image_url,
                "published_at": iso(a.published_at),
            }
            for a in item.articles
        ]
    return payload


def create_app(ctx: Union[AppContext, Callable[[], AppContext], None] = None) -> FastAPI:
    """Build the FastAPI app around an :class:`AppContext`.

    ``ctx`` may be a ready context, a zero-argument factory, or ``None`` to
    build one from the environment.
    """
    if ctx is None:
        ctx = build_context()
    elif callable(ctx) and not isinstance(ctx, AppContext):
        ctx = ctx()

    app = FastAPI(title="Newsroom API")
    app.state.ctx = ctx

    @app.get("/health")
    def health():
        return {"ok": True}

    @app.api_route("/api/cron/run", methods=["GET", "POST"], dependencies=[Depends(require_cron_secret)])
    def cron_run(request: Request, force: Optional[str] = Query(default=None)):
        forced = _is_truthy(force)
        logger.info("Cron trigger received (force=%s)", forced)
        result = _context(request).new_trigger().trigger(force=forced)
        return JSONResponse(status_code=result.status_code, content=result.body)

    @app.get("/api/clusters")
    def list_clusters(
        request: Request,
        lang: str = Query(default="en", pattern="^(en|si|ta)$"),
        topic: Optional[str] = Query(default=None),
        feed: str = Query(default="home", pattern="^(home|recent)$"),
        limit: int = Query(default=20, ge=1),
    ):
        app_ctx = _context(request)
        now = app_ctx.clock()
        if feed == "recent":
            since, column = now - RECENT_WINDOW, "first_seen_at"
        else:
            since, column = now - HOME_WINDOW, "last_seen_at"
        items = app_ctx.store.list_published_clusters(
            topic=normalize_topic_slug(topic) if topic else None,
            since=since,
            since_column=column,
            limit=min(limit, MAX_PAGE_SIZE),
        )
        return {
            "lang": lang,
            "feed": feed,
            "count": len(items),
            "clusters": [_cluster_payload(item, lang) for item in items],
        }

    @app.get("/api/clusters/{cluster_id}")
    def get_cluster(request: Request, cluster_id: str, lang: str = Query(default="en", pattern="^(en|si|ta)$")):
        item = _context(request).store.get_published_cluster(cluster_id)
        if item is None:
            raise HTTPException(status_code=404, detail="Not found")
        return _cluster_payload(item, lang, with_articles=True)

    return app
