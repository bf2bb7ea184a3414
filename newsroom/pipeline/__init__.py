"""Run control: lock, early-exit gate, circuit breaker, enrichment pool, metrics and trigger."""

from .breaker import CircuitBreaker
from .gate import EarlyExitGate, GateDecision
from .lock import DistributedLock
from .metrics import MetricsCollector, ProgressEvent, ProgressTracker

__all__ = [
    "CircuitBreaker",
    "EarlyExitGate",
    "GateDecision",
    "DistributedLock",
    "MetricsCollector",
    "ProgressEvent",
    "ProgressTracker",
]
