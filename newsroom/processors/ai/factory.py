from __future__ import annotations

import os
from typing import Optional

from .base import AIClient


def create_ai_client(*, backend: Optional[str] = None) -> AIClient:
    """Create an AI client based on PROCESSING_BACKEND env or explicit value.

    Supported values: "openai" (default) or "ollama".
    """
    selected = (backend or os.environ.get("PROCESSING_BACKEND", "openai")).lower()

    if selected == "openai":
        from .openai import OpenAIClient  # lazy import

        return OpenAIClient()
    if selected == "ollama":
        from .ollama import OllamaClient  # lazy import

        return OllamaClient()

    raise ValueError(f"Unsupported PROCESSING_BACKEND '{selected}'. Use 'openai' or 'ollama'.")
