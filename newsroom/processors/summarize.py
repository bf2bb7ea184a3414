from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional, Sequence

from ..models import Article
from ..utils.logging import get_logger
from .ai import AIClient

logger = get_logger("newsroom.processors.summarize")

PROMPT_VERSION = "v1-title-excerpt"
SOURCE_TEXT_CHARS = 1500
MAX_SUMMARY_WORDS = 120

SUMMARY_SYSTEM_PROMPT = """You are a neutral news summarization engine.

Your job is to write concise, factual, multi-source news summaries.
You must strictly follow journalistic neutrality.

Rules you must follow:
- Use ONLY the information provided in the sources
- Do NOT add assumptions, opinions, or predictions
- Do NOT exaggerate or sensationalize
- Do NOT invent names, numbers, or events
- If sources disagree, explicitly say "reports vary" and state both versions
- Prefer facts confirmed by multiple sources
- Write in clear, simple language
- Tone must be calm, factual, and professional

Output style:
- 1 short lead sentence
- 2-4 supporting sentences
- Past tense
- Third-person"""

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _truncate_words(text: str, max_words: int) -> str:
    words = text.split()
    return " ".join(words[:max_words]) if len(words) > max_words else text


def select_summary_articles(articles: Sequence[Article], *, max_articles: int = 5) -> List[Article]:
    """Newest articles first, at most one per distinct title."""
    ordered = sorted(
        articles,
        key=lambda a: a.published_at or a.created_at or _EPOCH,
        reverse=True,
    )
    seen: set[str] = set()
    picked: List[Article] = []
    for article in ordered:
        key = article.title.strip().lower()
        if key in seen:
            continue
        seen.add(key)
        picked.append(article)
        if len(picked) >= max_articles:
            break
    return picked


def build_summary_prompt(articles: Sequence[Article], *, previous: Optional[str] = None) -> str:
    sources = "\n\n".join(
        f"Source {idx} Title: {a.title}\nSource {idx} Text: {a.text[:SOURCE_TEXT_CHARS]}"
        for idx, a in enumerate(articles, start=1)
    )
    prior = f"Previous summary:\n{previous}\n\nUpdate only if new facts appear.\n\n" if previous else ""
    return (
        f"{prior}Summarize the following news reports into ONE neutral, factual news brief.\n\n"
        "Instructions:\n"
        "- Combine all sources into a single clear summary\n"
        "- Include only verified facts\n"
        "- If a fact appears in only one source, mention the source explicitly\n"
        "- If information conflicts, clearly state that reports differ\n"
        f"- Keep the summary under {MAX_SUMMARY_WORDS} words\n\n"
        f"Sources:\n{sources}"
    )


def summarize_articles(
    articles: Sequence[Article],
    *,
    ai: AIClient,
    previous: Optional[str] = None,
    model: Optional[str] = None,
    timeout: float = 30.0,
    max_articles: int = 5,
) -> str:
    picked = select_summary_articles(articles, max_articles=max_articles)
    if not picked:
        raise ValueError("No articles to summarize")
    summary = ai.complete(
        build_summary_prompt(picked, previous=previous),
        system=SUMMARY_SYSTEM_PROMPT,
        model=model,
        temperature=0.2,
        max_tokens=400,
        timeout=timeout,
    ).strip()
    if not summary:
        raise ValueError("Empty summary from AI")
    # Allow some slack over the prompt's limit before cutting
    return _truncate_words(summary, MAX_SUMMARY_WORDS + 40)
