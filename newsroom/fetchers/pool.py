from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional
from urllib.parse import urlparse

from ..models import Source
from ..utils.logging import get_logger
from ..utils.retry import RetryPolicy
from .rss import FeedError, FeedItem, fetch_feed

logger = get_logger("newsroom.fetchers.pool")


@dataclass(slots=True)
class SourceFetchResult:
    source: Source
    items: List[FeedItem] = field(default_factory=list)
    error: Optional[str] = None
    reason: Optional[str] = None
    duration_ms: float = 0.0
    dropped_off_domain: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None


def url_in_domain(url: str, base_domain: str) -> bool:
    """True when ``url``'s host is ``base_domain`` or one of its subdomains."""
    host = (urlparse(url).hostname or "").lower()
    domain = (base_domain or "").lower().lstrip(".")
    if not host or not domain:
        return False
    return host == domain or host.endswith("." + domain)


class FeedPool:
    """Fetch many feeds concurrently with a per-language concurrency cap.

    ``workers`` bounds the thread pool; ``per_language`` bounds how many
    feeds of one language are in flight at once, so a slow group of sources
    cannot take every worker.
    """

    def __init__(
        self,
        *,
        workers: int = 10,
        per_language: int = 4,
        timeout: float = 15.0,
        policy: RetryPolicy = RetryPolicy(attempts=3, base_delay=2.0),
        fetcher: Optional[Callable[..., List[FeedItem]]] = None,
    ) -> None:
        self.workers = max(1, workers)
        self.per_language = max(1, per_language)
        self.timeout = timeout
        self.policy = policy
        self._fetcher = fetcher or fetch_feed
        self._semaphores: Dict[str, threading.BoundedSemaphore] = {}
        self._sem_lock = threading.Lock()

    def _semaphore(self, language: str) -> threading.BoundedSemaphore:
        with self._sem_lock:
            if language not in self._semaphores:
                self._semaphores[language] = threading.BoundedSemaphore(self.per_language)
            return self._semaphores[language]

    def _fetch_source(self, source: Source, *, limit: Optional[int], policy: RetryPolicy) -> SourceFetchResult:
        result = SourceFetchResult(source=source)
        t0 = time.perf_counter()
        with self._semaphore(source.language):
            try:
                items = self._fetcher(source, timeout=self.timeout, policy=policy, limit=limit)
            except FeedError as exc:
                result.error = str(exc)
                result.reason = exc.reason
                logger.warning("Feed %s failed (%s): %s", source.name, exc.reason, exc)
            except Exception as exc:  # noqa: BLE001 - one bad feed must not sink the run
                result.error = str(exc) or exc.__class__.__name__
                result.reason = "fetch_error"
                logger.warning("Failed to fetch from %s: %s", source.name, exc)
            else:
                kept = [i for i in items if i.url and url_in_domain(i.url, source.base_domain)]
                result.dropped_off_domain = len(items) - len(kept)
                if result.dropped_off_domain:
                    logger.debug(
                        "Dropped %d off-domain item(s) from %s", result.dropped_off_domain, source.name
                    )
                result.items = kept
        result.duration_ms = (time.perf_counter() - t0) * 1000
        return result

    def fetch_all(
        self,
        sources: Iterable[Source],
        *,
        limit: Optional[int] = None,
        policy: Optional[RetryPolicy] = None,
    ) -> List[SourceFetchResult]:
        """Fetch every source; failures are reported per source, never raised."""
        src_list = [s for s in sources if s.is_live]
        if not src_list:
            return []

        effective = policy or self.policy
        results: List[SourceFetchResult] = []
        max_workers = min(self.workers, len(src_list))
        logger.debug("Starting concurrent fetch for %d sources (workers=%d)", len(src_list), max_workers)
        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="feed") as executor:
            future_map = {
                executor.submit(self._fetch_source, s, limit=limit, policy=effective): s for s in src_list
            }
            for fut in as_completed(future_map):
                results.append(fut.result())

        ok = sum(1 for r in results if r.ok)
        logger.info(
            "Concurrent fetch complete: items=%d ok=%d failed=%d",
            sum(len(r.items) for r in results),
            ok,
            len(results) - ok,
        )
        return results
