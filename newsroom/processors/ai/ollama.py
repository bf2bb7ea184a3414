from __future__ import annotations

import os
from typing import Any, Dict, Optional

import requests

from .base import AIClient
from .errors import AIError, AITimeoutError, error_for_status


class OllamaClient(AIClient):
    """HTTP client for Ollama's generate API.

    Environment:
      - OLLAMA_HOST (default: http://localhost:11434)
      - OLLAMA_MODEL (default: llama3.1:8b-instruct)
    """

    def __init__(self) -> None:
        self.host = os.environ.get("OLLAMA_HOST", "http://localhost:11434").rstrip("/")
        self.model = os.environ.get("OLLAMA_MODEL", "llama3.1:8b-instruct")

    def complete(
        self,
        prompt: str,
        *,
        system: Optional[str] = None,
        model: Optional[str] = None,
        temperature: float = 0.2,
        max_tokens: Optional[int] = None,
        timeout: float = 60.0,
    ) -> str:
        # The per-task model names target OpenAI; Ollama always uses its own model
        options: Dict[str, Any] = {"temperature": temperature}
        if max_tokens:
            options["num_predict"] = max_tokens
        payload: Dict[str, Any] = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": options,
        }
        if system:
            payload["system"] = system
        try:
            resp = requests.post(f"{self.host}/api/generate", json=payload, timeout=timeout)
        except requests.Timeout as exc:
            raise AITimeoutError(f"Ollama request timed out after {timeout}s") from exc
        except requests.RequestException as exc:
            raise AIError(f"Ollama request failed: {exc}") from exc
        if resp.status_code >= 400:
            raise error_for_status(resp.status_code, resp.text)
        # Ollama returns {'response': '...'}
        return (resp.json().get("response") or "").strip()
