"""Load the feed catalogue (``config/sources.yaml``) into :class:`Source` rows."""

from __future__ import annotations

import uuid
from pathlib import Path
from typing import Any, Dict, List
from urllib.parse import urlparse

import yaml

from ..models import LANGUAGES, Source


class ConfigError(Exception):
    """The sources file is missing, malformed, or describes an invalid feed."""


# Stable ids let the same YAML be loaded repeatedly without duplicating sources
_SOURCE_NAMESPACE = uuid.UUID("7d1c1a52-3f0e-4c35-9a55-1f4c7a6d2b10")


def source_id_for(feed_url: str) -> str:
    return str(uuid.uuid5(_SOURCE_NAMESPACE, feed_url.strip()))


def _host(url: str) -> str:
    host = (urlparse(url).hostname or "").lower()
    return host[4:] if host.startswith("www.") else host


def _parse_entry(position: int, entry: Any) -> Source:
    """Turn one ``sources`` list item into a ``Source``.

    Required keys are ``name`` and an absolute http(s) ``feed_url``.
    ``base_domain`` defaults to the feed host without ``www.``, ``language``
    to ``en``, and ``active``/``enabled`` to true.
    """
    where = f"sources[{position}]"
    if not isinstance(entry, dict):
        raise ConfigError(f"{where}: expected a mapping, got {type(entry).__name__}")

    name = str(entry.get("name") or "").strip()
    feed_url = str(entry.get("feed_url") or "").strip()
    if not name or not feed_url:
        raise ConfigError(f"{where}: 'name' and 'feed_url' are required")
    parsed = urlparse(feed_url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigError(f"{where}: feed_url '{feed_url}' is not an absolute http(s) URL")

    language = str(entry.get("language") or "en")
    if language not in LANGUAGES:
        raise ConfigError(f"{where}: language '{language}' is not one of {list(LANGUAGES)}")

    flags: Dict[str, bool] = {}
    for flag in ("active", "enabled"):
        value = entry.get(flag, True)
        if value is None:
            value = True
        if not isinstance(value, bool):
            raise ConfigError(f"{where}: '{flag}' must be true or false")
        flags[flag] = value

    base_domain = str(entry.get("base_domain") or _host(feed_url)).strip().lower()
    if not base_domain or "/" in base_domain:
        raise ConfigError(f"{where}: base_domain '{base_domain}' must be a bare host such as 'example.lk'")

    return Source(
        id=str(entry.get("id") or source_id_for(feed_url)),
        name=name,
        feed_url=feed_url,
        base_domain=base_domain,
        language=language,
        active=flags["active"],
        enabled=flags["enabled"],
    )


def load_sources_config(path: Path | str) -> List[Source]:
    """Read and validate the sources file.

    The top level is a mapping whose ``sources`` key holds the feed list;
    other top-level keys are ignored. Two entries may not share a feed URL.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    with config_path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError("Top level of the sources file must be a mapping")

    entries = data.get("sources") or []
    if not isinstance(entries, list):
        raise ConfigError("'sources' must be a list")

    loaded: List[Source] = []
    seen: Dict[str, str] = {}
    for position, entry in enumerate(entries):
        source = _parse_entry(position, entry)
        if source.feed_url in seen:
            raise ConfigError(f"Duplicate feed_url '{source.feed_url}' ({seen[source.feed_url]} and {source.name})")
        seen[source.feed_url] = source.name
        loaded.append(source)
    return loaded
