from __future__ import annotations

from typing import Optional


class AIError(Exception):
    """A language-model call failed."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AIAuthError(AIError):
    """Credentials were rejected; retrying will not help."""


class AIRateLimitError(AIError):
    pass


class AITimeoutError(AIError):
    pass


def error_for_status(status_code: int, body: str = "") -> AIError:
    snippet = (body or "").strip()[:200]
    message = f"LLM request failed with status {status_code}" + (f": {snippet}" if snippet else "")
    if status_code in (401, 403):
        return AIAuthError(message, status_code=status_code)
    if status_code == 429:
        return AIRateLimitError(message, status_code=status_code)
    if status_code in (408, 504):
        return AITimeoutError(message, status_code=status_code)
    return AIError(message, status_code=status_code)
