"""AI backend selection and clients (OpenAI-compatible, Ollama)."""

from .base import AIClient
from .errors import AIAuthError, AIError, AIRateLimitError, AITimeoutError, error_for_status
from .factory import create_ai_client

__all__ = [
    "AIClient",
    "AIError",
    "AIAuthError",
    "AIRateLimitError",
    "AITimeoutError",
    "create_ai_client",
    "error_for_status",
]
