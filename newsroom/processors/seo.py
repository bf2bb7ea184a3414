from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from ..models import Article
from ..utils.logging import get_logger
from .ai import AIClient
from .ai.parsing import parse_json_object, string_list
from .topics import normalize_topics

logger = get_logger("newsroom.processors.seo")

META_TITLE_MAX = 65
META_DESCRIPTION_MAX = 160
FALLBACK_TITLE_CHARS = 60
SLUG_MAX_WORDS = 9
SLUG_MAX_CHARS = 100

SLUG_STOP_WORDS = frozenset(
    {"a", "an", "the", "is", "are", "was", "were", "in", "on", "at", "to", "for", "of", "with", "by"}
)

SEO_SYSTEM_PROMPT = (
    "You are an SEO editor for a Sri Lankan news platform. "
    "Reply with a single JSON object only; no markdown, code fences, or extra text."
)

_slug_strip_re = re.compile(r"[^\w\s-]")
_slug_space_re = re.compile(r"\s+")


def generate_slug(title: str) -> str:
    """URL slug: lowercase, punctuation dropped, stop-words removed, 9 words, 100 chars."""
    cleaned = _slug_strip_re.sub("", (title or "").lower())
    words = [w for w in _slug_space_re.sub("-", cleaned.strip()).split("-") if w and w not in SLUG_STOP_WORDS]
    return "-".join(words[:SLUG_MAX_WORDS])[:SLUG_MAX_CHARS].strip("-")


def fallback_meta(headline: str, summary: Optional[str]) -> tuple[str, str]:
    return (headline or "")[:FALLBACK_TITLE_CHARS], (summary or "")[:META_DESCRIPTION_MAX]


def _clip(text: str, limit: int) -> str:
    text = " ".join(text.split())
    if len(text) <= limit:
        return text
    cut = text[:limit].rsplit(" ", 1)[0]
    return cut or text[:limit]


@dataclass(slots=True)
class SeoResult:
    title: str
    description: str
    slug: str
    topics: List[str] = field(default_factory=list)
    city: Optional[str] = None
    keywords: List[str] = field(default_factory=list)
    key_facts: List[str] = field(default_factory=list)
    confirmed_vs_differs: Optional[str] = None


def build_seo_prompt(headline: str, summary: str, articles: Sequence[Article]) -> str:
    titles = "\n".join(f"- {a.title}" for a in articles[:6])
    return (
        "Generate SEO metadata for this news story.\n\n"
        f"Headline: {headline}\n\n"
        f"Summary: {summary[:1000]}\n\n"
        f"Source headlines:\n{titles}\n\n"
        "Return JSON with keys:\n"
        f'- "seo_title": 50-{META_TITLE_MAX} characters, insight-based phrasing\n'
        f'- "meta_description": 150-{META_DESCRIPTION_MAX} characters, focus on public impact\n'
        '- "topics": list with a geographic scope (sri-lanka or world) and a content topic\n'
        '- "city": the Sri Lankan city or district concerned, or null\n'
        '- "keywords": 3-8 search keywords\n'
        '- "key_facts": 3-5 short factual bullet points\n'
        '- "confirmed_vs_differs": one short paragraph on what sources agree on and where they differ'
    )


def generate_seo(
    headline: str,
    summary: str,
    articles: Sequence[Article],
    *,
    ai: AIClient,
    category: Optional[str] = None,
    model: Optional[str] = None,
    timeout: float = 30.0,
) -> SeoResult:
    raw = ai.complete(
        build_seo_prompt(headline, summary, articles),
        system=SEO_SYSTEM_PROMPT,
        model=model,
        temperature=0.3,
        max_tokens=800,
        timeout=timeout,
    )
    obj = parse_json_object(raw)
    fb_title, fb_description = fallback_meta(headline, summary)

    title = obj.get("seo_title") if isinstance(obj.get("seo_title"), str) else ""
    description = obj.get("meta_description") if isinstance(obj.get("meta_description"), str) else ""
    title = _clip(title, META_TITLE_MAX) or fb_title
    description = _clip(description, META_DESCRIPTION_MAX) or fb_description

    city = obj.get("city") if isinstance(obj.get("city"), str) else None
    topics = normalize_topics(([category] if category else []) + string_list(obj.get("topics")))
    keywords = string_list(obj.get("keywords"), limit=10)
    if not keywords:
        keywords = [k for k in ("Sri Lanka", category, city) if k]
    note = obj.get("confirmed_vs_differs")

    return SeoResult(
        title=title,
        description=description,
        slug=generate_slug(title) or generate_slug(headline),
        topics=topics,
        city=city.strip() or None if city else None,
        keywords=keywords,
        key_facts=string_list(obj.get("key_facts"), limit=8),
        confirmed_vs_differs=note.strip() or None if isinstance(note, str) else None,
    )
