from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from ..fetchers import FeedPool
from ..models import Source
from ..processors.dedup import make_article_hash
from ..storage.store import NewsStore
from ..utils.logging import get_logger
from ..utils.retry import NO_RETRY

logger = get_logger("newsroom.pipeline.gate")

REASON_TOO_SOON = "too_soon"
REASON_NO_NEW_ITEMS = "no_new_items"
REASON_LOCKED = "locked"

EXISTING_RATIO_SKIP = 0.95


@dataclass(slots=True)
class GateDecision:
    should_skip: bool
    reason: Optional[str] = None
    message: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def proceed(cls, message: Optional[str] = None, **details: Any) -> "GateDecision":
        return cls(should_skip=False, message=message, details=details)

    @classmethod
    def skip(cls, reason: str, message: str, **details: Any) -> "GateDecision":
        return cls(should_skip=True, reason=reason, message=message, details=details)


class EarlyExitGate:
    """Cheap checks that decide whether a run is worth doing. Never writes,
    except through :meth:`record_successful_run`."""

    def __init__(
        self,
        store: NewsStore,
        pool: FeedPool,
        *,
        min_interval_minutes: int = 10,
        sample_items_per_feed: int = 10,
    ) -> None:
        self.store = store
        self.pool = pool
        self.min_interval = timedelta(minutes=min_interval_minutes)
        self.sample_items = sample_items_per_feed

    def check_too_soon(self, *, force: bool = False) -> GateDecision:
        if force:
            return GateDecision.proceed("forced")
        last = self.last_successful_run()
        if last is None:
            return GateDecision.proceed("no previous successful run")
        elapsed = self.store.clock() - last
        if elapsed < self.min_interval:
            minutes = int(elapsed.total_seconds() // 60)
            return GateDecision.skip(
                REASON_TOO_SOON,
                f"Last successful run was {minutes} minute(s) ago; minimum interval is "
                f"{int(self.min_interval.total_seconds() // 60)} minutes",
                last_successful_run=last.isoformat(),
            )
        return GateDecision.proceed()

    def check_new_items(self, sources: Sequence[Source]) -> GateDecision:
        if not sources:
            return GateDecision.skip(REASON_NO_NEW_ITEMS, "No active sources")

        results = self.pool.fetch_all(sources, limit=self.sample_items, policy=NO_RETRY)
        if results and all(not r.ok for r in results):
            logger.warning("Every sample fetch failed; proceeding with the full run")
            return GateDecision.proceed("all sample fetches failed", sampled_sources=len(results))

        hashes: List[str] = [
            make_article_hash(item.url, item.guid, item.title.strip()) for r in results for item in r.items
        ]
        if not hashes:
            return GateDecision.skip(REASON_NO_NEW_ITEMS, "Feeds returned no items")

        unique = set(hashes)
        existing = self.store.count_existing_hashes(unique)
        ratio = existing / len(unique)
        logger.info("Sample: %d/%d recent item(s) already stored (%.0f%%)", existing, len(unique), ratio * 100)
        if ratio >= EXISTING_RATIO_SKIP:
            return GateDecision.skip(
                REASON_NO_NEW_ITEMS,
                f"{existing} of {len(unique)} sampled items already stored",
                sampled=len(unique),
                existing=existing,
            )
        return GateDecision.proceed(sampled=len(unique), existing=existing, new=len(unique) - existing)

    def last_successful_run(self) -> Optional[datetime]:
        try:
            return self.store.get_last_successful_run()
        except Exception as exc:  # noqa: BLE001 - a missing marker must not block runs
            logger.warning("Could not read last successful run: %s", exc)
            return None

    def record_successful_run(self, timestamp: Optional[datetime] = None) -> None:
        try:
            self.store.set_last_successful_run(timestamp)
        except Exception as exc:  # noqa: BLE001
            logger.error("Could not record successful run: %s", exc)
