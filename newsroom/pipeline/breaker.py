from __future__ import annotations

import threading
from collections import defaultdict
from typing import Dict, Optional

from ..utils.logging import get_logger

logger = get_logger("newsroom.pipeline.breaker")


class CircuitBreaker:
    """Opens after ``threshold`` consecutive failures of one task kind.

    A success of a kind resets that kind's streak. Once open it stays open
    for the rest of the run.
    """

    def __init__(self, threshold: int = 5) -> None:
        self.threshold = max(1, threshold)
        self._streaks: Dict[str, int] = defaultdict(int)
        self._opened_by: Optional[str] = None
        self._lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        with self._lock:
            return self._opened_by is not None

    @property
    def opened_by(self) -> Optional[str]:
        with self._lock:
            return self._opened_by

    def record_success(self, kind: str) -> None:
        with self._lock:
            self._streaks[kind] = 0

    def record_failure(self, kind: str) -> bool:
        """Count a failure; True when this call opened the breaker."""
        with self._lock:
            self._streaks[kind] += 1
            if self._opened_by is None and self._streaks[kind] >= self.threshold:
                self._opened_by = kind
                logger.error(
                    "Circuit breaker opened: %d consecutive '%s' failures", self._streaks[kind], kind
                )
                return True
            return False

    def streak(self, kind: str) -> int:
        with self._lock:
            return self._streaks[kind]
