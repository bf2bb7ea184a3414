from __future__ import annotations

from typing import Optional, Sequence

from ..models import Article
from ..utils.logging import get_logger
from .ai import AIClient

logger = get_logger("newsroom.processors.classify")

ALLOWED_CATEGORIES = ("politics", "economy", "sports", "technology", "health", "education")
DEFAULT_CATEGORY = "politics"

_PARTIAL_MATCHES = (
    ("politic", "politics"),
    ("econom", "economy"),
    ("sport", "sports"),
    ("tech", "technology"),
    ("health", "health"),
    ("educat", "education"),
)

CATEGORY_SYSTEM_PROMPT = (
    "You are a neutral news classifier for a Sri Lanka news platform. "
    "Classify news strictly by topic. Return ONLY one category from the allowed list. "
    "Do not explain your reasoning."
)


def build_category_prompt(articles: Sequence[Article], *, max_articles: int = 6) -> str:
    content = "\n\n".join(
        f"Article {idx}:\nTitle: {a.title}\nContent: {(a.content_excerpt or '')[:500]}"
        for idx, a in enumerate(articles[:max_articles], start=1)
    )
    return (
        "Given the following multi-source news content, assign ONE category.\n\n"
        "Allowed categories:\n"
        f"{', '.join(ALLOWED_CATEGORIES)}\n\n"
        "Rules:\n"
        "- Choose the most dominant theme.\n"
        "- Use Sri Lankan context (e.g., ICC -> sports, MOH -> health, CEB -> economy).\n"
        "- Government-related news -> politics\n"
        "- Finance, fuel, prices -> economy\n"
        "- Disease, hospitals, health services -> health\n"
        "- Exams, schools, universities -> education\n"
        "- Return only the category word in lowercase.\n"
        "- No extra text, no explanation.\n\n"
        f"Content:\n{content}"
    )


def parse_category(raw: Optional[str]) -> Optional[str]:
    """Map a model reply to an allowed category; ``None`` when nothing matches."""
    response = (raw or "").strip().lower()
    if response in ALLOWED_CATEGORIES:
        return response
    for fragment, category in _PARTIAL_MATCHES:
        if fragment in response:
            return category
    return None


def categorize_articles(
    articles: Sequence[Article],
    *,
    ai: AIClient,
    model: Optional[str] = None,
    timeout: float = 15.0,
) -> str:
    """Return exactly one allowed category for a cluster's articles.

    An unrecognized reply falls back to ``politics``; transport errors are
    raised so the caller can record the failure.
    """
    if not articles:
        return DEFAULT_CATEGORY
    raw = ai.complete(
        build_category_prompt(articles),
        system=CATEGORY_SYSTEM_PROMPT,
        model=model,
        temperature=0.1,
        max_tokens=20,
        timeout=timeout,
    )
    category = parse_category(raw)
    if category is None:
        logger.warning("Invalid category '%s' from AI; defaulting to '%s'", raw, DEFAULT_CATEGORY)
        return DEFAULT_CATEGORY
    return category
