"""Text cleanup shared by ingestion, clustering and prompt building."""

from __future__ import annotations

import html
import re
import unicodedata
from typing import Dict

from bs4 import BeautifulSoup

EXCERPT_CHARS = 400

_SPACES = re.compile(r"\s+")
# C0 controls except tab/newline/CR, plus DEL
_CONTROL = re.compile(r"[\u0000-\u0008\u000B\u000C\u000E-\u001F\u007F]")

# Typographic punctuation folded to ASCII
_ASCII_FOLD = str.maketrans(
    {
        "\u2018": "'",
        "\u2019": "'",
        "\u201c": '"',
        "\u201d": '"',
        "\u2013": "-",
        "\u2014": "-",
        "\u00a0": " ",
        "\ufeff": "",
    }
)

# Script block per language; the first block found in the text wins
SCRIPT_RANGES: Dict[str, re.Pattern[str]] = {
    "si": re.compile(r"[\u0d80-\u0dff]"),
    "ta": re.compile(r"[\u0b80-\u0bff]"),
}


def clean_html_to_text(raw_html: str | None) -> str:
    if not raw_html:
        return ""
    text = BeautifulSoup(raw_html, "html.parser").get_text(" ")
    return _SPACES.sub(" ", html.unescape(text)).strip()


def normalize_plain_text(text: str | None) -> str:
    """Fold punctuation, apply NFKC, drop control characters, collapse spaces.

    Zero-width joiners are kept: Sinhala conjuncts depend on them.
    """
    if not text:
        return ""
    folded = unicodedata.normalize("NFKC", text.translate(_ASCII_FOLD))
    return _SPACES.sub(" ", _CONTROL.sub(" ", folded)).strip()


def detect_language(text: str | None) -> str:
    """``si`` or ``ta`` by script, ``en`` for anything else, ``unk`` when blank."""
    if not text or not text.strip():
        return "unk"
    for lang, pattern in SCRIPT_RANGES.items():
        if pattern.search(text):
            return lang
    return "en"


def make_excerpt(text: str | None, *, max_chars: int = EXCERPT_CHARS) -> str:
    cleaned = normalize_plain_text(clean_html_to_text(text))
    if len(cleaned) <= max_chars:
        return cleaned
    return cleaned[:max_chars].rsplit(" ", 1)[0] + "..."
