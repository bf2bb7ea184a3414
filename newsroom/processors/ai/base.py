from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional


class AIClient(ABC):
    """Abstract text-completion interface used by every enrichment task."""

    @abstractmethod
    def complete(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        model: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: Optional[int] = None,
        timeout: float = 30.0,
    ) -> str:
        """Return the model's reply to ``prompt``.

        Raises :class:`~newsroom.processors.ai.errors.AIError` subclasses on
        failure; ``timeout`` is a hard per-request limit in seconds.
        """
