from __future__ import annotations

import re
from typing import Iterable, List, Optional

VALID_TOPICS = (
    "politics",
    "economy",
    "business",
    "sports",
    "crime",
    "education",
    "health",
    "environment",
    "technology",
    "culture",
    "entertainment",
    "science",
    "sri-lanka",
    "world",
    "local",
)

TOPIC_LABELS = {
    "politics": "Politics",
    "economy": "Economy",
    "business": "Business",
    "sports": "Sports",
    "crime": "Crime",
    "education": "Education",
    "health": "Health",
    "environment": "Environment",
    "technology": "Technology",
    "culture": "Culture",
    "entertainment": "Entertainment",
    "science": "Science",
    "sri-lanka": "Sri Lanka",
    "world": "World",
    "local": "Local",
}

_SPECIAL_CASES = {
    "sri lanka": "sri-lanka",
    "srilanka": "sri-lanka",
    "sri_lanka": "sri-lanka",
    "tech": "technology",
    "env": "environment",
    "edu": "education",
    "pol": "politics",
    "econ": "economy",
    "biz": "business",
    "ent": "entertainment",
    "sci": "science",
}

_separator_re = re.compile(r"[\s_]+")
_invalid_re = re.compile(r"[^a-z0-9-]")
_dashes_re = re.compile(r"-+")


def normalize_topic_slug(topic: Optional[str]) -> Optional[str]:
    """Map free text to one of VALID_TOPICS, or ``None``."""
    if not topic:
        return None
    normalized = topic.lower().strip()
    normalized = _SPECIAL_CASES.get(normalized, normalized)
    normalized = _separator_re.sub("-", normalized)
    normalized = _invalid_re.sub("", normalized)
    normalized = _dashes_re.sub("-", normalized).strip("-")
    return normalized if normalized in VALID_TOPICS else None


def normalize_topics(values: Iterable[str]) -> List[str]:
    out: List[str] = []
    for value in values:
        slug = normalize_topic_slug(value) if isinstance(value, str) else None
        if slug and slug not in out:
            out.append(slug)
    return out


def topic_label(topic: str) -> str:
    slug = normalize_topic_slug(topic)
    return TOPIC_LABELS.get(slug, topic) if slug else topic
