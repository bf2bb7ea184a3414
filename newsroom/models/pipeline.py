from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(slots=True)
class LockRecord:
    name: str
    holder: Optional[str]
    acquired_at: Optional[datetime]
    expires_at: datetime


@dataclass(slots=True)
class PipelineRun:
    id: str
    status: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    notes: Optional[str] = None
