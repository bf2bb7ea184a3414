from __future__ import annotations

import uuid
from datetime import timedelta
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.engine import Connection, Engine

from ..models import LockRecord
from ..storage.db import dialect_insert
from ..storage.schema import pipeline_lock
from ..storage.transactions import TransactionManager
from ..utils.clock import Clock, as_utc, utc_now
from ..utils.logging import get_logger

logger = get_logger("newsroom.pipeline.lock")


class DistributedLock:
    """Named TTL lock stored in the ``pipeline_lock`` table.

    ``acquire`` is one upsert: it inserts the row, or takes it over only when
    the current lease has expired. Whoever's token ends up in ``holder`` owns
    the lock until ``expires_at``; a crashed holder is superseded once the TTL
    passes.
    """

    def __init__(
        self,
        engine: Engine,
        *,
        name: str = "cron_pipeline",
        ttl_minutes: int = 10,
        transactions: Optional[TransactionManager] = None,
        clock: Clock = utc_now,
    ) -> None:
        self.engine = engine
        self.name = name
        self.ttl = timedelta(minutes=ttl_minutes)
        self.token = uuid.uuid4().hex
        self.tx = transactions or TransactionManager(engine)
        self.clock = clock
        self._insert = dialect_insert(engine)

    def acquire(self) -> bool:
        try:
            acquired = self.tx.run(self._acquire, label="lock_acquire")
        except Exception as exc:  # noqa: BLE001 - contention or outage both mean "not ours"
            logger.error("Lock %s acquire failed: %s", self.name, exc)
            return False
        if acquired:
            logger.info("Acquired lock %s (holder=%s, ttl=%s)", self.name, self.token[:8], self.ttl)
        else:
            logger.info("Lock %s is held by another run", self.name)
        return acquired

    def _acquire(self, conn: Connection) -> bool:
        now = self.clock()
        stmt = self._insert(pipeline_lock).values(
            name=self.name,
            holder=self.token,
            acquired_at=now,
            expires_at=now + self.ttl,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["name"],
            set_={
                "holder": stmt.excluded.holder,
                "acquired_at": stmt.excluded.acquired_at,
                "expires_at": stmt.excluded.expires_at,
            },
            where=pipeline_lock.c.expires_at <= now,
        ).returning(pipeline_lock.c.holder)
        row = conn.execute(stmt).first()
        if row is not None:
            return row[0] == self.token
        # No row back: the lease is live. It may still be ours from a replayed attempt.
        holder = conn.execute(select(pipeline_lock.c.holder).where(pipeline_lock.c.name == self.name)).scalar()
        return holder == self.token

    def release(self) -> None:
        """Expire our lease now. Never raises."""
        try:
            stmt = (
                update(pipeline_lock)
                .where(pipeline_lock.c.name == self.name, pipeline_lock.c.holder == self.token)
                .values(expires_at=self.clock())
            )
            with self.engine.begin() as conn:
                released = conn.execute(stmt).rowcount
            if released:
                logger.info("Released lock %s", self.name)
        except Exception as exc:  # noqa: BLE001 - the TTL reclaims the lock anyway
            logger.error("Lock %s release failed: %s", self.name, exc)

    def is_locked(self) -> bool:
        """Fast pre-check; ``acquire`` is the authority."""
        record = self.current()
        return record is not None and record.expires_at > self.clock()

    def current(self) -> Optional[LockRecord]:
        stmt = select(pipeline_lock).where(pipeline_lock.c.name == self.name)
        with self.engine.connect() as conn:
            row = conn.execute(stmt).first()
        if row is None:
            return None
        m = row._mapping
        return LockRecord(
            name=m["name"],
            holder=m["holder"],
            acquired_at=as_utc(m["acquired_at"]),
            expires_at=as_utc(m["expires_at"]),
        )
