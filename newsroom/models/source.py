from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

Language = Literal["en", "si", "ta"]
LANGUAGES: tuple[str, ...] = ("en", "si", "ta")


@dataclass(slots=True, frozen=True)
class Source:
    """An allow-listed feed. Owned by the registry and never changed mid-run."""

    id: str
    name: str
    feed_url: str
    base_domain: str
    language: str = "en"
    active: bool = True
    enabled: bool = True

    @property
    def is_live(self) -> bool:
        return self.active and self.enabled
