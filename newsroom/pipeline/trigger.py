from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..models import Source
from ..storage.store import NewsStore
from ..utils.logging import get_logger
from .gate import REASON_LOCKED, REASON_NO_NEW_ITEMS, EarlyExitGate, GateDecision
from .lock import DistributedLock
from .metrics import MetricsCollector

logger = get_logger("newsroom.pipeline.trigger")

RunPipeline = Callable[[List[Source], MetricsCollector], Dict[str, Any]]


@dataclass(slots=True)
class TriggerResult:
    status_code: int
    body: Dict[str, Any] = field(default_factory=dict)

    @property
    def skipped(self) -> bool:
        return bool(self.body.get("skipped"))


def _skipped(decision: GateDecision) -> TriggerResult:
    body: Dict[str, Any] = {"ok": True, "skipped": True, "reason": decision.reason, "message": decision.message}
    body.update(decision.details)
    return TriggerResult(200, body)


class PipelineTrigger:
    """Guards a pipeline run with the lock and the early-exit checks.

    Order: lock pre-check, recency guard, acquire, load sources, new-item
    sample, run, record success. The lock is released on every path once
    acquired. A failed run answers 500 with the counts gathered so far.
    """

    def __init__(
        self,
        *,
        store: NewsStore,
        lock_factory: Callable[[], DistributedLock],
        gate: EarlyExitGate,
        run_pipeline: RunPipeline,
        load_sources: Optional[Callable[[], List[Source]]] = None,
    ) -> None:
        self.store = store
        self.lock_factory = lock_factory
        self.gate = gate
        self.run_pipeline = run_pipeline
        self.load_sources = load_sources or store.load_active_sources

    def trigger(self, *, force: bool = False) -> TriggerResult:
        metrics = MetricsCollector(clock=self.store.clock)
        lock: Optional[DistributedLock] = None
        acquired = False
        run_id: Optional[str] = None
        try:
            lock = self.lock_factory()
            if lock.is_locked():
                logger.info("Pipeline already running; skipping")
                return _skipped(GateDecision.skip(REASON_LOCKED, "Pipeline is already running"))

            recency = self.gate.check_too_soon(force=force)
            if recency.should_skip:
                logger.info("Skipping run: %s", recency.message)
                return _skipped(recency)

            if not lock.acquire():
                return _skipped(GateDecision.skip(REASON_LOCKED, "Pipeline lock is held by another run"))
            acquired = True

            run_id = self._start_run()
            sources = self.load_sources()
            if not sources:
                self._finish_run(run_id, "skipped", REASON_NO_NEW_ITEMS)
                return _skipped(GateDecision.skip(REASON_NO_NEW_ITEMS, "No active sources"))

            sample = self.gate.check_new_items(sources)
            if sample.should_skip:
                logger.info("Skipping run: %s", sample.message)
                self._finish_run(run_id, "skipped", sample.reason)
                return _skipped(sample)

            stats = self.run_pipeline(sources, metrics)
            self.gate.record_successful_run()
            self._finish_run(run_id, "success", None)
            body: Dict[str, Any] = {"ok": True, "run_id": run_id, "forced": force}
            body.update(stats)
            return TriggerResult(200, body)
        except Exception as exc:  # noqa: BLE001 - top-level run guard
            logger.exception("Pipeline run failed: %s", exc)
            self._finish_run(run_id, "failed", str(exc))
            metrics.finalize()
            # Counts only; the exception text stays in the log
            return TriggerResult(500, {"ok": False, "error": "Internal server error", "stats": metrics.to_dict()})
        finally:
            if acquired and lock is not None:
                lock.release()

    def _start_run(self) -> Optional[str]:
        try:
            return self.store.start_run().id
        except Exception as exc:  # noqa: BLE001 - run bookkeeping is best effort
            logger.warning("Could not record run start: %s", exc)
            return None

    def _finish_run(self, run_id: Optional[str], status: str, notes: Optional[str]) -> None:
        if run_id is None:
            return
        try:
            self.store.finish_run(run_id, status, notes)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Could not record run finish for %s: %s", run_id, exc)
