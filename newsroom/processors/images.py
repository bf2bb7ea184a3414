from __future__ import annotations

import re
from typing import Iterable, List, Optional
from urllib.parse import unquote, urlparse

from .ai import AIClient
from .ai.parsing import parse_index

# Matched as whole words of the file name; hyphenated entries as word runs
NON_CONTENT_PATTERNS = (
    "placeholder",
    "default",
    "no-image",
    "noimage",
    "missing",
    "logo",
    "icon",
    "avatar",
    "profile-pic",
    "user-icon",
    "advertisement",
    "ad",
    "ads",
    "banner",
    "promo",
    "promotion",
    "pixel",
    "spacer",
    "loading",
    "spinner",
    "coming-soon",
    "favicon",
    "badge",
    "button",
    "widget",
    "tracking",
    "beacon",
    "analytics",
)

# Directory names that only ever hold site chrome
NON_CONTENT_DIRS = frozenset(
    {"ads", "adverts", "advertisements", "banners", "icons", "logos", "avatars", "badges", "widgets", "tracking", "emoji"}
)

SOCIAL_MARKERS = ("facebook", "twitter", "instagram", "linkedin", "social", "share")

_size_re = re.compile(r"(\d+)x(\d+)")
_word_split = re.compile(r"[^a-z0-9]+")

IMAGE_SYSTEM_PROMPT = (
    "You are an image selection expert for a news aggregation platform specializing in Sri Lankan news. "
    'Reply with a JSON object {"index": <zero-based index>, "reason": "<short reason>"} only.'
)


def _words(segment: str) -> str:
    """``-``-joined words of a path segment, padded so markers match whole words."""
    return "-" + "-".join(w for w in _word_split.split(segment) if w) + "-"


def is_content_image(url: str) -> bool:
    """False for logos, icons, ads, tracking pixels, tiny images and social widgets.

    Markers are checked against the words of the file name, so ``kuwait`` or
    ``road-accident`` never trip ``wait`` or ``ad``. Directories only count
    when the whole segment names a chrome folder such as ``icons``.
    """
    parsed = urlparse(url or "")
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return False
    segments = [s for s in unquote(parsed.path).lower().split("/") if s]
    if not segments:
        return False
    *dirs, filename = segments
    if any(d in NON_CONTENT_DIRS for d in dirs):
        return False
    stem = filename.rsplit(".", 1)[0] if "." in filename else filename
    words = _words(stem)
    if any(f"-{p}-" in words for p in NON_CONTENT_PATTERNS):
        return False
    size = _size_re.search(stem)
    if size and int(size.group(1)) < 100 and int(size.group(2)) < 100:
        return False
    return not any(f"-{m}-" in words for m in SOCIAL_MARKERS)


def filter_image_candidates(urls: Iterable[Optional[str]]) -> List[str]:
    out: List[str] = []
    for url in urls:
        if url and url not in out and is_content_image(url):
            out.append(url)
    return out


def build_image_prompt(candidates: List[str], headline: str, summary: str) -> str:
    listing = "\n".join(f"Image {idx}: {url}" for idx, url in enumerate(candidates))
    clipped = summary[:1000] + ("..." if len(summary) > 1000 else "")
    return (
        "Given a news article headline and summary, select the MOST RELEVANT and HIGHEST QUALITY image.\n\n"
        f"Headline: {headline}\n\n"
        f"Summary: {clipped}\n\n"
        f"Available Images:\n{listing}\n\n"
        "Prefer news photographs of the people, places or events in the story. "
        "Never pick logos, advertisements, banners or generic stock graphics."
    )


def choose_image(
    candidates: List[str],
    headline: str,
    summary: str,
    *,
    ai: AIClient,
    model: Optional[str] = None,
    timeout: float = 60.0,
) -> Optional[str]:
    """Pick one of ``candidates``; asks the model only when there is a choice to make."""
    if not candidates:
        return None
    if len(candidates) == 1:
        return candidates[0]
    raw = ai.complete(
        build_image_prompt(candidates, headline, summary),
        system=IMAGE_SYSTEM_PROMPT,
        model=model,
        temperature=0.1,
        max_tokens=100,
        timeout=timeout,
    )
    return candidates[parse_index(raw, upper=len(candidates))]
