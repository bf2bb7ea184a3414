"""Run metrics and progress callbacks.

``MetricsCollector`` is shared by the fetch pool callbacks and the enrichment
workers, so every mutation takes its lock. ``to_dict`` returns plain data for
the trigger response and the run record.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Callable, Deque, Dict, List, Optional

from ..utils.clock import Clock, iso, utc_now
from ..utils.logging import get_logger

logger = get_logger("newsroom.pipeline.metrics")

MAX_ERRORS = 100


@dataclass(slots=True)
class FetchStat:
    source: str
    language: str
    items: int = 0
    ok: bool = True
    error: Optional[str] = None
    duration_ms: float = 0.0


@dataclass(slots=True)
class TaskStat:
    total: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    total_ms: float = 0.0

    @property
    def avg_ms(self) -> float:
        timed = self.successful + self.failed
        return self.total_ms / timed if timed else 0.0


@dataclass(slots=True)
class ErrorRecord:
    stage: str
    message: str
    at: str
    source: Optional[str] = None
    cluster_id: Optional[str] = None
    task: Optional[str] = None


class MetricsCollector:
    def __init__(self, *, clock: Clock = utc_now, max_errors: int = MAX_ERRORS) -> None:
        self._lock = threading.Lock()
        self._clock = clock
        self.started_at = clock()
        self.finished_at: Optional[datetime] = None
        self._t0 = time.perf_counter()
        self.duration_ms: Optional[float] = None
        self.fetch: List[FetchStat] = []
        self.inserted = 0
        self.deduplicated = 0
        self.insert_failed = 0
        self.counters: Dict[str, int] = {}
        self.tasks: Dict[str, TaskStat] = {}
        self.errors: Deque[ErrorRecord] = deque(maxlen=max_errors)
        self.errors_total = 0

    def record_fetch(
        self,
        source: str,
        language: str,
        *,
        items: int,
        ok: bool,
        error: Optional[str] = None,
        duration_ms: float = 0.0,
    ) -> None:
        with self._lock:
            self.fetch.append(FetchStat(source, language, items, ok, error, duration_ms))
        if not ok:
            self.record_error("fetch", error or "fetch failed", source=source)

    def record_insert(self, *, inserted: int, deduplicated: int, failed: int = 0) -> None:
        with self._lock:
            self.inserted += inserted
            self.deduplicated += deduplicated
            self.insert_failed += failed

    def incr(self, name: str, amount: int = 1) -> None:
        with self._lock:
            self.counters[name] = self.counters.get(name, 0) + amount

    def record_task(self, task: str, status: str, duration_ms: float = 0.0) -> None:
        with self._lock:
            stat = self.tasks.setdefault(task, TaskStat())
            stat.total += 1
            if status == "ok":
                stat.successful += 1
                stat.total_ms += duration_ms
            elif status == "failed":
                stat.failed += 1
                stat.total_ms += duration_ms
            else:
                stat.skipped += 1

    def record_error(
        self,
        stage: str,
        message: str,
        *,
        source: Optional[str] = None,
        cluster_id: Optional[str] = None,
        task: Optional[str] = None,
    ) -> None:
        record = ErrorRecord(stage, str(message)[:500], iso(self._clock()) or "", source, cluster_id, task)
        with self._lock:
            self.errors.append(record)
            self.errors_total += 1

    def finalize(self) -> None:
        with self._lock:
            if self.finished_at is None:
                self.finished_at = self._clock()
                self.duration_ms = (time.perf_counter() - self._t0) * 1000

    def fetch_by_language(self) -> Dict[str, Dict[str, int]]:
        with self._lock:
            out: Dict[str, Dict[str, int]] = {}
            for stat in self.fetch:
                bucket = out.setdefault(stat.language, {"sources": 0, "failed": 0, "items": 0})
                bucket["sources"] += 1
                bucket["items"] += stat.items
                bucket["failed"] += 0 if stat.ok else 1
            return out

    def to_dict(self) -> Dict[str, Any]:
        by_language = self.fetch_by_language()
        with self._lock:
            return {
                "started_at": iso(self.started_at),
                "finished_at": iso(self.finished_at),
                "duration_ms": round(self.duration_ms, 1) if self.duration_ms is not None else None,
                "fetch": {
                    "sources": len(self.fetch),
                    "failed": sum(1 for f in self.fetch if not f.ok),
                    "items": sum(f.items for f in self.fetch),
                    "by_language": by_language,
                    "by_source": [asdict(f) for f in self.fetch],
                },
                "inserted": self.inserted,
                "deduplicated": self.deduplicated,
                "insert_failed": self.insert_failed,
                "counters": dict(self.counters),
                "tasks": {
                    name: {
                        "total": s.total,
                        "successful": s.successful,
                        "failed": s.failed,
                        "skipped": s.skipped,
                        "avg_ms": round(s.avg_ms, 1),
                    }
                    for name, s in self.tasks.items()
                },
                "errors": [asdict(e) for e in self.errors],
                "errors_total": self.errors_total,
            }


@dataclass(slots=True)
class ProgressEvent:
    stage: str
    current: int
    total: int
    message: str = ""
    percent: float = 0.0


ProgressCallback = Callable[[ProgressEvent], None]


class ProgressTracker:
    def __init__(self) -> None:
        self._callbacks: List[ProgressCallback] = []
        self._lock = threading.Lock()

    def on_progress(self, callback: ProgressCallback) -> None:
        with self._lock:
            if callback not in self._callbacks:
                self._callbacks.append(callback)

    def off_progress(self, callback: ProgressCallback) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    def emit(self, stage: str, current: int, total: int, message: str = "") -> ProgressEvent:
        percent = round(min(100.0, 100.0 * current / total), 1) if total > 0 else 100.0
        event = ProgressEvent(stage=stage, current=current, total=total, message=message, percent=percent)
        with self._lock:
            callbacks = list(self._callbacks)
        for callback in callbacks:
            try:
                callback(event)
            except Exception as exc:  # noqa: BLE001 - a listener must not break the run
                logger.warning("Progress callback failed for %s: %s", stage, exc)
        return event
