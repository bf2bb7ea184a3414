from __future__ import annotations

import os
from typing import Any, Dict, List, Optional

import requests

from .base import AIClient
from .errors import AIError, AITimeoutError, error_for_status


class OpenAIClient(AIClient):
    """HTTP client for an OpenAI-compatible ``/chat/completions`` API.

    Environment:
      - OPENAI_API_KEY (required)
      - OPENAI_BASE_URL (default: https://api.openai.com/v1)
      - SUMMARY_MODEL (default model, default: gpt-4o-mini)
    """

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY", "")
        self.base_url = (base_url or os.environ.get("OPENAI_BASE_URL", "https://api.openai.com/v1")).rstrip("/")
        self.model = model or os.environ.get("SUMMARY_MODEL", "gpt-4o-mini")
        self._session = session or requests.Session()
        if not self.api_key:
            raise ValueError("OPENAI_API_KEY is not set")

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
        messages: List[Dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        payload: Dict[str, Any] = {
            "model": model or self.model,
            "messages": messages,
            "temperature": temperature,
        }
        if max_tokens:
            payload["max_tokens"] = max_tokens

        try:
            resp = self._session.post(
                f"{self.base_url}/chat/completions",
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=timeout,
            )
        except requests.Timeout as exc:
            raise AITimeoutError(f"LLM request timed out after {timeout}s") from exc
        except requests.RequestException as exc:
            raise AIError(f"LLM request failed: {exc}") from exc

        if resp.status_code >= 400:
            raise error_for_status(resp.status_code, resp.text)
        data = resp.json()
        try:
            return (data["choices"][0]["message"]["content"] or "").strip()
        except (KeyError, IndexError, TypeError) as exc:
            raise AIError("Malformed completion response") from exc
