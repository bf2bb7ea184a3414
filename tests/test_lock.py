"""Tests for the database-backed run lock."""

import threading
from datetime import timedelta

from newsroom.pipeline.lock import DistributedLock
from newsroom.storage import TransactionManager


def _lock(engine, clock, **kw):
    return DistributedLock(
        engine,
        name=kw.pop("name", "cron_pipeline"),
        ttl_minutes=kw.pop("ttl_minutes", 10),
        transactions=TransactionManager(engine, sleep=lambda _: None),
        clock=clock,
    )


class TestDistributedLock:
    def test_acquire_and_release(self, engine, clock) -> None:
        lock = _lock(engine, clock)

        assert lock.acquire() is True
        assert lock.is_locked() is True
        lock.release()
        assert lock.is_locked() is False

    def test_second_holder_is_refused_while_lease_is_live(self, engine, clock) -> None:
        first, second = _lock(engine, clock), _lock(engine, clock)

        assert first.acquire() is True
        assert second.acquire() is False
        assert first.current().holder == first.token

    def test_expired_lease_can_be_taken_over(self, engine, clock) -> None:
        crashed, successor = _lock(engine, clock), _lock(engine, clock)
        assert crashed.acquire() is True

        clock.advance(minutes=10, seconds=1)

        assert successor.acquire() is True
        assert successor.current().holder == successor.token
        assert successor.current().expires_at == clock.now + timedelta(minutes=10)

    def test_release_by_non_holder_is_ignored(self, engine, clock) -> None:
        holder, other = _lock(engine, clock), _lock(engine, clock)
        holder.acquire()

        other.release()

        assert holder.is_locked() is True

    def test_names_are_independent(self, engine, clock) -> None:
        assert _lock(engine, clock, name="a").acquire() is True
        assert _lock(engine, clock, name="b").acquire() is True

    def test_exactly_one_concurrent_acquire_wins(self, file_engine, clock) -> None:
        locks = [_lock(file_engine, clock) for _ in range(8)]
        barrier = threading.Barrier(len(locks))
        results = []
        results_lock = threading.Lock()

        def contend(lock):
            barrier.wait()
            won = lock.acquire()
            with results_lock:
                results.append(won)

        threads = [threading.Thread(target=contend, args=(lock,)) for lock in locks]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 1
        assert len(results) == len(locks)
