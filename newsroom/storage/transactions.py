"""Retried, chunked persistence helpers.

Every write issued through this module is either an idempotent upsert or a
conditional update, so replaying a chunk after a transient failure, or
finding a batch only partly applied, leaves the store consistent.
"""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field
from typing import Callable, Iterator, List, Optional, Sequence, TypeVar

from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import DBAPIError, IntegrityError

from ..utils.logging import get_logger
from ..utils.retry import RetryPolicy, retry_call

T = TypeVar("T")
R = TypeVar("R")
logger = get_logger("newsroom.storage.transactions")

_TRANSIENT_RE = re.compile(r"deadlock|lock|timeout|timed out", re.IGNORECASE)

DEFAULT_WRITE_POLICY = RetryPolicy(attempts=5, base_delay=1.0, multiplier=2.0, max_delay=16.0, jitter=0.2)


def is_transient_db_error(exc: BaseException) -> bool:
    """True for lock, deadlock and timeout conditions worth retrying."""
    if isinstance(exc, IntegrityError):
        return False
    if isinstance(exc, DBAPIError):
        if exc.connection_invalidated:
            return True
        # str(exc) embeds the SQL text; only the driver message is meaningful
        return bool(_TRANSIENT_RE.search(str(exc.orig)))
    return bool(_TRANSIENT_RE.search(str(exc)))


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    size = max(1, size)
    for start in range(0, len(items), size):
        yield items[start : start + size]


@dataclass(slots=True)
class BatchResult:
    applied: int = 0
    failed: int = 0
    chunks: int = 0
    errors: List[str] = field(default_factory=list)


class TransactionManager:
    def __init__(
        self,
        engine: Engine,
        *,
        chunk_size: int = 100,
        policy: RetryPolicy = DEFAULT_WRITE_POLICY,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.engine = engine
        self.chunk_size = max(1, chunk_size)
        self.policy = policy
        self._sleep = sleep

    def run(self, fn: Callable[[Connection], R], *, label: str = "transaction") -> R:
        """Run ``fn`` inside one transaction, retrying transient failures."""

        def attempt() -> R:
            with self.engine.begin() as conn:
                return fn(conn)

        return retry_call(
            attempt,
            policy=self.policy,
            retryable=is_transient_db_error,
            label=label,
            sleep=self._sleep,
        )

    def read(self, fn: Callable[[Connection], R]) -> R:
        with self.engine.connect() as conn:
            return fn(conn)

    def run_batches(
        self,
        items: Sequence[T],
        fn: Callable[[Connection, Sequence[T]], int],
        *,
        label: str = "batch",
        chunk_size: Optional[int] = None,
    ) -> BatchResult:
        """Apply ``fn`` to each chunk of ``items`` in its own transaction.

        ``fn`` returns how many items of the chunk it applied. A chunk that
        fails terminally is recorded and skipped; later chunks still run.
        """
        result = BatchResult()
        for chunk in chunked(items, chunk_size or self.chunk_size):
            result.chunks += 1
            try:
                result.applied += self.run(lambda conn, c=chunk: fn(conn, c), label=f"{label}[{result.chunks}]")
            except Exception as exc:  # noqa: BLE001 - terminal for this chunk only
                result.failed += len(chunk)
                message = f"{label} chunk {result.chunks} failed: {exc}"
                result.errors.append(message[:500])
                logger.error("%s", message)
        return result
