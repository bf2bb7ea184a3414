from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .ai import AIClient
from .ai.parsing import parse_json_object, string_list

LANGUAGE_NAMES = {"si": "Sinhala", "ta": "Tamil"}

TRANSLATE_SYSTEM_PROMPT = (
    "You are a professional news translator. Translate English news content into formal written "
    "news-style language. Preserve meaning exactly; do NOT add or remove information; keep all "
    "names, numbers and dates accurate. Reply with a single JSON object only."
)


@dataclass(slots=True)
class Translation:
    language: str
    headline: str
    summary: str
    key_facts: List[str] = field(default_factory=list)
    confirmed_vs_differs: Optional[str] = None


def build_translation_prompt(
    language: str,
    headline: str,
    summary: str,
    key_facts: Sequence[str] = (),
    note: Optional[str] = None,
) -> str:
    label = LANGUAGE_NAMES[language]
    facts = "\n".join(f"- {f}" for f in key_facts) or "(none)"
    extra = "\n- Avoid informal or spoken Tamil" if language == "ta" else ""
    return (
        f"Translate the following into formal written {label}.{extra}\n\n"
        f"Headline: {headline}\n\n"
        f"Summary: {summary}\n\n"
        f"Key facts:\n{facts}\n\n"
        f"Confirmed vs differs: {note or '(none)'}\n\n"
        'Return JSON with keys "headline", "summary", "key_facts" (list) and '
        '"confirmed_vs_differs" (string or null).'
    )


def translate_story(
    language: str,
    headline: str,
    summary: str,
    *,
    ai: AIClient,
    key_facts: Sequence[str] = (),
    note: Optional[str] = None,
    model: Optional[str] = None,
    timeout: float = 45.0,
) -> Translation:
    if language not in LANGUAGE_NAMES:
        raise ValueError(f"Unsupported translation target '{language}'")
    raw = ai.complete(
        build_translation_prompt(language, headline, summary, key_facts, note),
        system=TRANSLATE_SYSTEM_PROMPT,
        model=model,
        temperature=0.2,
        max_tokens=1200,
        timeout=timeout,
    )
    obj = parse_json_object(raw)
    translated_summary = obj.get("summary")
    if not isinstance(translated_summary, str) or not translated_summary.strip():
        raise ValueError(f"Missing {LANGUAGE_NAMES[language]} summary in translation")
    translated_headline = obj.get("headline")
    note_out = obj.get("confirmed_vs_differs")
    return Translation(
        language=language,
        headline=translated_headline.strip() if isinstance(translated_headline, str) and translated_headline.strip() else headline,
        summary=translated_summary.strip(),
        key_facts=string_list(obj.get("key_facts"), limit=8),
        confirmed_vs_differs=note_out.strip() or None if isinstance(note_out, str) else None,
    )
