"""Output filename templating and tag text cleanup."""

from __future__ import annotations

import re
import unicodedata
from typing import TYPE_CHECKING

from ..config.constants import MAX_FILENAME_LENGTH

if TYPE_CHECKING:
    from collections.abc import Mapping

_PLACEHOLDER_RE = re.compile(r"%\(([^)]+)\)s")
_RESERVED_RE = re.compile(r'[/\\?%*:|"<>]')


def _value(meta: Mapping[str, object], key: str) -> str:
    value = meta.get(key)
    return str(value).strip() if value is not None else ""


def resolve_template(meta: Mapping[str, object], template: str) -> str:
    """
    Fill ``%(key)s`` and ``%(a|b)s`` placeholders from metadata.

    ``a|b`` takes the first non-empty of the two keys.  Dangling dashes
    left by empty placeholders are removed.
    """

    def substitute(match: re.Match[str]) -> str:
        expr = match.group(1)
        if "|" in expr:
            first, second = (part.strip() for part in expr.split("|", 1))
            return _value(meta, first) or _value(meta, second)
        return _value(meta, expr)

    text = _PLACEHOLDER_RE.sub(substitute, template)
    text = re.sub(r"\s+-\s+", " - ", text)
    text = re.sub(r"^\s*-\s+", "", text)
    text = re.sub(r"\s+-\s*$", "", text)
    text = re.sub(r"\s{2,}", " ", text)
    return text.strip()


def sanitize_filename(name: str, replacement: str = "_") -> str:
    text = unicodedata.normalize("NFC", name)
    text = re.sub(r"\s*•+\s*", " - ", text)
    text = re.sub(r"\s+&\s+", ", ", text)
    text = _RESERVED_RE.sub(replacement, text)
    text = re.sub(r"\s+", " ", text).strip()
    text = text[:MAX_FILENAME_LENGTH]
    # Trailing underscores come from stripped reserved characters
    return re.sub(r"\s*(?:_+\s*)+$", "", text).strip()


def maybe_clean_title(title: str | None, *, clean_pipe: bool = False) -> str | None:
    """Keep only the last ``|`` segment of a title when enabled."""
    if not title or not clean_pipe:
        return title
    parts = [part.strip() for part in title.split("|")]
    return parts[-1] if len(parts) > 1 else title


def clean_title_for_tags(title: str | None) -> str | None:
    if not title:
        return title
    text = re.sub(r"\s*_\s*", " ", str(title).strip())
    text = re.sub(r"\s*(?:[-–—•]\s*)+$", "", text)
    return re.sub(r"\s{2,}", " ", text).strip()


def comment_key_for(fmt: str) -> str:
    """Vorbis-comment containers call it DESCRIPTION."""
    return "DESCRIPTION" if fmt.lower() in {"flac", "ogg"} else "comment"
