"""Token-overlap similarity used to group articles into clusters."""

from __future__ import annotations

import re
from typing import Iterable, List

STOP_WORDS = frozenset({"the", "a", "an", "of", "in", "on", "and", "or", "to", "for", "with", "by", "at", "from"})

SYNONYMS = {
    "govt": "government",
    "gov": "government",
    "lanka": "sri lanka",
    "sl": "sri lanka",
}

KNOWN_PLACES = frozenset({"colombo", "jaffna", "kandy", "galle", "matara", "kurunegala"})

TOKEN_WEIGHT = 0.7
ENTITY_WEIGHT = 0.3

_non_alnum_re = re.compile(r"[^a-z0-9\s]")
_capitalized_re = re.compile(r"\b[A-Z][a-z]+\b")


def normalize_title(title: str) -> List[str]:
    """Lowercased, synonym-expanded, stop-word-free unique tokens in first-seen order."""
    lowered = _non_alnum_re.sub(" ", (title or "").lower())
    tokens: List[str] = []
    for raw in lowered.split():
        for token in SYNONYMS.get(raw, raw).split(" "):
            if token and token not in STOP_WORDS:
                tokens.append(token)
    return list(dict.fromkeys(tokens))


def extract_entities(text: str) -> List[str]:
    """Known place names appearing capitalized in ``text``."""
    found = (w.lower() for w in _capitalized_re.findall(text or ""))
    return list(dict.fromkeys(w for w in found if w in KNOWN_PLACES))


def jaccard(a: Iterable[str], b: Iterable[str]) -> float:
    sa, sb = set(a), set(b)
    union = sa | sb
    if not union:
        return 0.0
    return len(sa & sb) / len(union)


def similarity_score(
    a_tokens: Iterable[str],
    b_tokens: Iterable[str],
    a_entities: Iterable[str],
    b_entities: Iterable[str],
) -> float:
    return TOKEN_WEIGHT * jaccard(a_tokens, b_tokens) + ENTITY_WEIGHT * jaccard(a_entities, b_entities)


def title_similarity(a: str, b: str) -> float:
    return similarity_score(normalize_title(a), normalize_title(b), extract_entities(a), extract_entities(b))
