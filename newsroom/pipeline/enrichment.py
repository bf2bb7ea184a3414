"""Parallel per-cluster enrichment.

A fixed number of worker loops pull cluster ids from a shared queue. Each
cluster runs the tasks in :data:`TASK_ORDER`; every task is retried on its
own and its failure never stops the next task. The circuit breaker and the
deadline both stop workers from taking new clusters; whatever is left in the
queue is reported as deferred and picked up by a later run.
"""

from __future__ import annotations

import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from ..models import TASK_FAILED, TASK_OK, TASK_SKIPPED, ClusterStatus, TaskOutcome
from ..processors.ai import AIAuthError
from ..processors.tasks import TASK_ORDER, ClusterWork, EnrichmentTasks, TaskSkipped
from ..storage.store import NewsStore
from ..utils.logging import get_logger
from ..utils.retry import RetryPolicy, retry_call
from .breaker import CircuitBreaker
from .metrics import MetricsCollector, ProgressTracker

logger = get_logger("newsroom.pipeline.enrichment")


def _retryable_task_error(exc: BaseException) -> bool:
    return not isinstance(exc, (TaskSkipped, AIAuthError, LookupError))


@dataclass(slots=True)
class EnrichmentReport:
    processed: List[str] = field(default_factory=list)
    published: List[str] = field(default_factory=list)
    drafts: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    deferred: List[str] = field(default_factory=list)
    breaker_opened_by: Optional[str] = None
    deadline_hit: bool = False

    def to_dict(self) -> dict:
        return {
            "processed": len(self.processed),
            "published": len(self.published),
            "drafts": len(self.drafts),
            "failed": len(self.failed),
            "deferred": len(self.deferred),
            "deferred_ids": list(self.deferred),
            "breaker_opened_by": self.breaker_opened_by,
            "deadline_hit": self.deadline_hit,
        }


class EnrichmentOrchestrator:
    def __init__(
        self,
        store: NewsStore,
        tasks: EnrichmentTasks,
        *,
        workers: int = 5,
        max_consecutive_failures: int = 5,
        task_policy: RetryPolicy = RetryPolicy(attempts=3, base_delay=1.5, multiplier=1.5, jitter=0.2),
        metrics: Optional[MetricsCollector] = None,
        progress: Optional[ProgressTracker] = None,
        sleep=time.sleep,
    ) -> None:
        self.store = store
        self.tasks = tasks
        self.workers = max(1, workers)
        self.max_consecutive_failures = max_consecutive_failures
        self.task_policy = task_policy
        self.metrics = metrics or MetricsCollector()
        self.progress = progress or ProgressTracker()
        self._sleep = sleep

    def run(self, cluster_ids: Iterable[str], *, deadline: Optional[float] = None) -> EnrichmentReport:
        """Enrich every cluster in ``cluster_ids``.

        ``deadline`` is a ``time.monotonic()`` value after which no new
        cluster is started.
        """
        ids = list(dict.fromkeys(cluster_ids))
        report = EnrichmentReport()
        if not ids:
            return report

        work_queue: "queue.Queue[str]" = queue.Queue()
        for cluster_id in ids:
            work_queue.put(cluster_id)

        breaker = CircuitBreaker(self.max_consecutive_failures)
        report_lock = threading.Lock()
        done = [0]

        def should_stop() -> bool:
            if breaker.is_open:
                return True
            if deadline is not None and time.monotonic() >= deadline:
                with report_lock:
                    report.deadline_hit = True
                return True
            return False

        def worker_loop() -> None:
            while not should_stop():
                try:
                    cluster_id = work_queue.get_nowait()
                except queue.Empty:
                    return
                try:
                    outcome = self._process_cluster(cluster_id, breaker)
                except Exception as exc:  # noqa: BLE001 - isolate one cluster
                    logger.exception("Enrichment failed for cluster %s: %s", cluster_id, exc)
                    self.metrics.record_error("enrich", str(exc), cluster_id=cluster_id)
                    outcome = "failed"
                with report_lock:
                    report.processed.append(cluster_id)
                    if outcome == ClusterStatus.PUBLISHED.value:
                        report.published.append(cluster_id)
                    elif outcome == ClusterStatus.DRAFT.value:
                        report.drafts.append(cluster_id)
                    else:
                        report.failed.append(cluster_id)
                    done[0] += 1
                    current = done[0]
                self.progress.emit("enrich", current, len(ids), f"cluster {cluster_id}")

        logger.info("Enriching %d cluster(s) with %d worker(s)", len(ids), min(self.workers, len(ids)))
        with ThreadPoolExecutor(max_workers=min(self.workers, len(ids)), thread_name_prefix="enrich") as executor:
            futures = [executor.submit(worker_loop) for _ in range(min(self.workers, len(ids)))]
            for fut in futures:
                fut.result()

        while True:
            try:
                report.deferred.append(work_queue.get_nowait())
            except queue.Empty:
                break
        report.breaker_opened_by = breaker.opened_by
        if report.deferred:
            logger.warning(
                "Deferred %d cluster(s) to the next run (breaker=%s, deadline=%s)",
                len(report.deferred),
                report.breaker_opened_by,
                report.deadline_hit,
            )
        logger.info(
            "Enrichment finished: processed=%d published=%d drafts=%d failed=%d deferred=%d",
            len(report.processed),
            len(report.published),
            len(report.drafts),
            len(report.failed),
            len(report.deferred),
        )
        return report

    def _process_cluster(self, cluster_id: str, breaker: CircuitBreaker) -> str:
        work = self.tasks.load(cluster_id)
        for name in TASK_ORDER:
            if breaker.is_open:
                work.draft.outcomes[name] = TaskOutcome(name, TASK_SKIPPED, error="circuit breaker open")
                self.metrics.record_task(name, TASK_SKIPPED)
                continue
            self._run_task(name, work, breaker)

        saved = self.store.save_enrichment(work.draft)
        logger.info(
            "Cluster %s saved as %s (%s)",
            cluster_id,
            saved.status.value,
            ", ".join(f"{o.task}={o.status}" for o in work.draft.outcomes.values()),
        )
        return saved.status.value

    def _run_task(self, name: str, work: ClusterWork, breaker: CircuitBreaker) -> None:
        fn = self.tasks.get(name)
        t0 = time.perf_counter()
        try:
            retry_call(
                lambda: fn(work),
                policy=self.task_policy,
                retryable=_retryable_task_error,
                label=f"{name} {work.cluster.id[:8]}",
                sleep=self._sleep,
            )
        except TaskSkipped as skipped:
            work.draft.outcomes[name] = TaskOutcome(name, TASK_SKIPPED, error=str(skipped) or None)
            self.metrics.record_task(name, TASK_SKIPPED)
            return
        except Exception as exc:  # noqa: BLE001 - recorded; the next task still runs
            duration_ms = (time.perf_counter() - t0) * 1000
            work.draft.outcomes[name] = TaskOutcome(name, TASK_FAILED, duration_ms, str(exc)[:500])
            self.metrics.record_task(name, TASK_FAILED, duration_ms)
            self.metrics.record_error("enrich", str(exc), cluster_id=work.cluster.id, task=name)
            logger.warning("Task %s failed for cluster %s: %s", name, work.cluster.id, exc)
            breaker.record_failure(name)
            return
        duration_ms = (time.perf_counter() - t0) * 1000
        work.draft.outcomes[name] = TaskOutcome(name, TASK_OK, duration_ms)
        self.metrics.record_task(name, TASK_OK, duration_ms)
        breaker.record_success(name)
