# parsing/localisation_parser.py
"""Loader for pre-existing localisation files."""

from __future__ import annotations

import re

import structlog
from core.errors import ParseError

from models import LocalisationBase

logger = structlog.get_logger(__name__)

_HEADER_RE = re.compile(r"^(l_[A-Za-z_]+)\s*:\s*$")
_KEY_PART = r'^(?P<key>[A-Za-z0-9_.\-\']+)\s*:\s*(?:\d+\s*)?'
_ENTRY_RE = re.compile(_KEY_PART + r'"(?P<text>(?:[^"\\]|\\.)*)"\s*(?:#.*)?$')
# Hand-edited files sometimes carry unescaped quotes inside the text.
_LOOSE_ENTRY_RE = re.compile(_KEY_PART + r'"(?P<text>.*)"\s*$')
_ESCAPES = {"n": "\n"}


def _unescape(text: str) -> str:
    return re.sub(r"\\(.)", lambda m: _ESCAPES.get(m.group(1), m.group(1)), text)


def parse_localisation(text: str, source: str = "<string>") -> LocalisationBase:
    """Parse ``key: "text"`` / ``key:0 "text"`` lines into a LocalisationBase.

    An optional ``l_<language>:`` header line is recorded as the language.
    Blank lines and ``#`` comments are ignored. Later duplicates win.
    """
    entries: dict[str, str] = {}
    language: str | None = None
    for line_no, raw_line in enumerate(text.lstrip("\ufeff").splitlines(), start=1):
        stripped = raw_line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        header = _HEADER_RE.match(stripped)
        if header:
            if language is not None and header.group(1) != language:
                raise ParseError(
                    "localisation file declares more than one language",
                    line_no,
                    raw_line.find(stripped) + 1,
                    header.group(1),
                    source,
                )
            language = header.group(1)
            continue
        entry = _ENTRY_RE.match(stripped) or _LOOSE_ENTRY_RE.match(stripped)
        if not entry:
            raise ParseError(
                "expected 'key: \"text\"'",
                line_no,
                raw_line.find(stripped) + 1,
                stripped[:40],
                source,
            )
        key = entry.group("key")
        if key in entries:
            logger.warning(
                "Duplicate localisation key in base; later entry wins.",
                key=key,
                source=source,
                line=line_no,
            )
        entries[key] = _unescape(entry.group("text"))
    logger.debug(
        "Loaded localisation base.", source=source, entries=len(entries)
    )
    return LocalisationBase(entries=entries, language=language)
