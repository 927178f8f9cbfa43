from __future__ import annotations

from typing import Optional

from .models import DEFAULT_TITLE, Metadata
from .package import TEXT_KEY, Node, node_values

# Older producers serialize text content under a bare underscore.
LEGACY_TEXT_KEY = "_"


def as_list(value: Optional[Node]) -> list[Node]:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def node_text(value: Optional[Node]) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        text = value
    elif isinstance(value, dict):
        raw = value.get(TEXT_KEY)
        if not isinstance(raw, str) or not raw.strip():
            raw = value.get(LEGACY_TEXT_KEY)
        if not isinstance(raw, str):
            return None
        text = raw
    else:
        return None
    text = text.strip()
    return text or None


def _texts(raw: dict, name: str) -> list[str]:
    texts: list[str] = []
    for value in node_values(raw, name):
        text = node_text(value)
        if text is not None:
            texts.append(text)
    return texts


def _first_text(raw: dict, name: str) -> Optional[str]:
    values = node_values(raw, name)
    if not values:
        return None
    return node_text(values[0])


def _attribute(value: Node, name: str) -> Optional[str]:
    if not isinstance(value, dict):
        return None
    raw = value.get(name)
    if not isinstance(raw, str):
        return None
    return raw.strip() or None


def _cover_image_id(raw: dict) -> Optional[str]:
    for meta in node_values(raw, "meta"):
        if _attribute(meta, "name") == "cover" or _attribute(meta, "property") == "cover-image":
            return _attribute(meta, "content") or node_text(meta)
    return None


def normalize_metadata(raw: Optional[dict], format_version: str) -> Metadata:
    """Turn the loosely-typed ``<metadata>`` node into a ``Metadata`` record.

    Every element may appear once or repeated, and each occurrence may be a
    bare string or a dict with its text under ``_text`` (or ``_``).
    """
    raw = raw if isinstance(raw, dict) else {}
    authors = _texts(raw, "creator")
    subjects = _texts(raw, "subject")
    return Metadata(
        title=_first_text(raw, "title") or DEFAULT_TITLE,
        author=authors[0] if authors else None,
        authors=authors or None,
        publisher=_first_text(raw, "publisher"),
        language=_first_text(raw, "language"),
        isbn=_first_text(raw, "identifier"),
        description=_first_text(raw, "description"),
        subjects=subjects or None,
        date=_first_text(raw, "date"),
        rights=_first_text(raw, "rights"),
        cover_image_id=_cover_image_id(raw),
        format_version=(format_version or "").strip(),
    )
