"""Title, excerpt, and date derivation from extracted newsletter text.

All functions here are pure: the same text in gives the same fields out.
"""

from __future__ import annotations

import datetime as dt
import re
from pathlib import PurePosixPath

from newsarchive.models import DateSource

DEFAULT_EXCERPT = "Click to read this newsletter..."
DEFAULT_TITLE = "Untitled Newsletter"
ELLIPSIS = "..."

_MONTHS = {
    "january": 1,
    "february": 2,
    "march": 3,
    "april": 4,
    "may": 5,
    "june": 6,
    "july": 7,
    "august": 8,
    "september": 9,
    "october": 10,
    "november": 11,
    "december": 12,
}

_LONG_DATE_RE = re.compile(
    r"\b(" + "|".join(_MONTHS) + r")\s+(\d{1,2}),?\s+(\d{4})\b",
    re.IGNORECASE,
)
_ISO_DATE_RE = re.compile(r"(\d{4})-(\d{2})-(\d{2})")
_ENUM_PREFIX_RE = re.compile(r"^\d+\.\s+")
_LEADING_NONWORD_RE = re.compile(r"^\W+")
_SEPARATOR_RE = re.compile(r"[-_]+")
_SLUG_RE = re.compile(r"[^a-z0-9]+")


def truncate(text: str, limit: int) -> str:
    """Cut *text* to at most *limit* chars, ending in an ellipsis when cut."""
    if len(text) <= limit:
        return text
    return text[: max(limit - len(ELLIPSIS), 0)].rstrip() + ELLIPSIS


def strip_extension(identifier: str) -> str:
    name = PurePosixPath(identifier).name
    stem, dot, _ = name.rpartition(".")
    return stem if dot and stem else name


def identifier_to_id(identifier: str) -> str:
    """Lower-case slug of the identifier without its extension."""
    slug = _SLUG_RE.sub("-", strip_extension(identifier).lower()).strip("-")
    return slug or "newsletter"


def title_from_identifier(identifier: str) -> str:
    """'summer_update-2024.docx' -> 'Summer Update 2024'."""
    words = _SEPARATOR_RE.sub(" ", strip_extension(identifier)).split()
    title = " ".join(w[:1].upper() + w[1:] for w in words)
    return title or DEFAULT_TITLE


def _clean_title_line(line: str) -> str:
    line = _ENUM_PREFIX_RE.sub("", line)
    return _LEADING_NONWORD_RE.sub("", line).strip()


def derive_title(
    text: str,
    identifier: str,
    *,
    min_length: int = 10,
    max_length: int = 150,
    truncate_to: int = 100,
) -> str:
    """First line whose stripped length is in ``[min_length, max_length)``.

    Falls back to a title built from the identifier.
    """
    for line in text.splitlines():
        stripped = line.strip()
        if min_length <= len(stripped) < max_length:
            cleaned = _clean_title_line(stripped)
            if cleaned:
                return truncate(cleaned, truncate_to)
    return truncate(title_from_identifier(identifier), truncate_to)


def derive_excerpt(
    text: str,
    *,
    min_length: int = 50,
    max_length: int = 300,
    truncate_to: int = 200,
) -> str:
    lines = text.splitlines()
    for line in lines:
        stripped = line.strip()
        if min_length <= len(stripped) < max_length:
            return truncate(stripped, truncate_to)

    candidate = " ".join(line.strip() for line in lines[1:4] if line.strip())
    if not candidate:
        candidate = " ".join(text[:truncate_to].split())
    candidate = truncate(candidate, truncate_to)
    return candidate or DEFAULT_EXCERPT


def _safe_date(year: int, month: int, day: int) -> dt.date | None:
    try:
        return dt.date(year, month, day)
    except ValueError:
        return None


def find_body_date(text: str) -> dt.date | None:
    """First valid 'August 22, 2024' style date in the text."""
    for match in _LONG_DATE_RE.finditer(text):
        month = _MONTHS[match.group(1).lower()]
        found = _safe_date(int(match.group(3)), month, int(match.group(2)))
        if found:
            return found
    return None


def find_identifier_date(identifier: str) -> dt.date | None:
    for match in _ISO_DATE_RE.finditer(identifier):
        found = _safe_date(*(int(g) for g in match.groups()))
        if found:
            return found
    return None


def derive_date(
    text: str,
    identifier: str,
    *,
    today: dt.date | None = None,
) -> tuple[dt.date, DateSource]:
    """Body date, else identifier ISO date, else *today*."""
    found = find_body_date(text)
    if found:
        return found, DateSource.BODY
    found = find_identifier_date(identifier)
    if found:
        return found, DateSource.IDENTIFIER
    return today or dt.date.today(), DateSource.DEFAULT
