"""HTML post-processing for converted newsletters.

A fixed, ordered list of regex transforms. Each one takes an HTML string
and returns a new one; none of them changes the visible text, only tags,
attributes, and the whitespace between tags.
"""

from __future__ import annotations

import html as htmllib
import re
from collections.abc import Callable

CENTER_CLASS = "centered"
TIGHT_CLASS = "tight"
IMAGE_BLOCK = '<div class="image-block centered">{}</div>'

_BLOCK_TAGS = "p|h[1-6]|ul|ol|li|blockquote|table|div"
# Elements that already give an <img> its own block.
_IMAGE_CONTAINERS = {
    "p", "div", "li", "td", "th", "figure", "blockquote", "a",
    "h1", "h2", "h3", "h4", "h5", "h6",
}

_BLANK_RUN_RE = re.compile(r"\n[ \t]*\n(?:[ \t]*\n)+")
_EMPTY_P_RE = re.compile(
    r"<p(?:\s[^>]*)?>(?:\s|&nbsp;|&#160;|<br\s*/?>)*</p>", re.IGNORECASE
)
_BLOCK_BOUNDARY_RE = re.compile(
    rf"(</(?:{_BLOCK_TAGS})>)[ \t\r\n]*(<(?:{_BLOCK_TAGS})\b)", re.IGNORECASE
)
_PARAGRAPH_RE = re.compile(r"<p(\s[^>]*)?>(.*?)</p>", re.IGNORECASE | re.DOTALL)
_IMAGE_ONLY_P_RE = re.compile(
    r"<p(?:\s[^>]*)?>\s*(<img\b[^>]*>)\s*</p>", re.IGNORECASE
)
_TAG_RE = re.compile(r"<(/?)([a-zA-Z][a-zA-Z0-9]*)\b[^>]*?(/?)>")
_STRIP_TAGS_RE = re.compile(r"<[^>]+>")
_CLASS_ATTR_RE = re.compile(r'\bclass="([^"]*)"', re.IGNORECASE)

# Emphasis-wrapped lines: *text*, — text —, --text--
_ASTERISK_RE = re.compile(r"^\*[^*]+\*$")
_DASH_RE = re.compile(r"^[—–]\s*\S.*?\s*[—–]$")
_HYPHEN_RE = re.compile(r"^-{2,}\s*\S.*?\s*-{2,}$")
_LABEL_VALUE_RE = re.compile(r"^[A-Za-z][\w .'/&-]{0,30}:\s*\S")

_SMALL_WORDS = {
    "a", "an", "and", "as", "at", "but", "by", "for", "from", "in", "into",
    "nor", "of", "on", "or", "the", "to", "with",
}
_TERMINAL_PUNCT = ".!?:;,"

MAX_CENTER_LENGTH = 80
MAX_TITLE_CASE_LENGTH = 60
MAX_TITLE_CASE_WORDS = 8
MAX_TIGHT_LENGTH = 60


def visible_text(html: str) -> str:
    """Tag-stripped, entity-decoded, whitespace-collapsed text."""
    return " ".join(htmllib.unescape(_STRIP_TAGS_RE.sub(" ", html)).split())


def _add_class(attrs: str | None, cls: str) -> str:
    attrs = attrs or ""
    match = _CLASS_ATTR_RE.search(attrs)
    if match is None:
        return f'{attrs} class="{cls}"'
    classes = match.group(1).split()
    if cls in classes:
        return attrs
    merged = " ".join(classes + [cls])
    return attrs[: match.start()] + f'class="{merged}"' + attrs[match.end():]


# ---------------------------------------------------------------------------
# Transforms
# ---------------------------------------------------------------------------

def collapse_blank_lines(html: str) -> str:
    """Three or more line breaks in a row become exactly one blank line."""
    return _BLANK_RUN_RE.sub("\n\n", html)


def strip_empty_paragraphs(html: str) -> str:
    """Drop <p> elements holding only whitespace, &nbsp; or <br>."""
    return _EMPTY_P_RE.sub("", html)


def space_block_boundaries(html: str) -> str:
    """One newline between a closing block tag and the next opening one."""
    return _BLOCK_BOUNDARY_RE.sub(r"\1\n\2", html)


def is_emphasis_line(text: str) -> bool:
    """Short standalone line that reads as a banner or section label."""
    if not text or len(text) > MAX_CENTER_LENGTH:
        return False
    if _ASTERISK_RE.match(text) or _DASH_RE.match(text) or _HYPHEN_RE.match(text):
        return True

    letters = [c for c in text if c.isalpha()]
    if len(letters) >= 3 and all(c.isupper() for c in letters):
        return True

    if len(text) > MAX_TITLE_CASE_LENGTH or text[-1] in _TERMINAL_PUNCT:
        return False
    words = [w for w in text.split() if w[:1].isalpha()]
    if not words or len(words) > MAX_TITLE_CASE_WORDS:
        return False
    if not words[0][0].isupper():
        return False
    return all(w[0].isupper() or w.lower() in _SMALL_WORDS for w in words)


def center_emphasis_lines(html: str) -> str:
    """Mark emphasis-wrapped, all-caps, or title-cased short <p> as centered."""

    def _center(match: re.Match) -> str:
        attrs, inner = match.group(1), match.group(2)
        if "<img" in inner.lower() or not is_emphasis_line(visible_text(inner)):
            return match.group(0)
        return f"<p{_add_class(attrs, CENTER_CLASS)}>{inner}</p>"

    return _PARAGRAPH_RE.sub(_center, html)


def wrap_inline_images(html: str) -> str:
    """Put images that are not already block-wrapped in a centered div."""
    html = _IMAGE_ONLY_P_RE.sub(lambda m: IMAGE_BLOCK.format(m.group(1)), html)

    out: list[str] = []
    depth = 0
    pos = 0
    for match in _TAG_RE.finditer(html):
        closing, name, self_closing = match.group(1), match.group(2).lower(), match.group(3)
        out.append(html[pos: match.start()])
        tag = match.group(0)
        if name == "img":
            out.append(tag if depth else IMAGE_BLOCK.format(tag))
        else:
            out.append(tag)
            if name in _IMAGE_CONTAINERS and not self_closing:
                depth = max(depth - 1, 0) if closing else depth + 1
        pos = match.end()
    out.append(html[pos:])
    return "".join(out)


def is_tight_line(text: str) -> bool:
    """Short line from an address block, signature, or 'Label: value' list."""
    if not text or len(text) > MAX_TIGHT_LENGTH:
        return False
    if _LABEL_VALUE_RE.match(text):
        return True
    return text[-1] not in ".!?"


def tighten_clusters(html: str) -> str:
    """Give runs of two or more adjacent short <p> lines tight spacing."""
    matches = list(_PARAGRAPH_RE.finditer(html))
    tight: set[int] = set()
    run: list[int] = []

    def _flush() -> None:
        if len(run) >= 2:
            tight.update(run)
        run.clear()

    for i, match in enumerate(matches):
        inner = match.group(2)
        candidate = "<img" not in inner.lower() and is_tight_line(visible_text(inner))
        adjacent = i > 0 and html[matches[i - 1].end(): match.start()].strip() == ""
        if not candidate:
            _flush()
            continue
        if run and not adjacent:
            _flush()
        run.append(i)
    _flush()

    if not tight:
        return html
    out: list[str] = []
    pos = 0
    for i, match in enumerate(matches):
        if i not in tight:
            continue
        out.append(html[pos: match.start()])
        out.append(f"<p{_add_class(match.group(1), TIGHT_CLASS)}>{match.group(2)}</p>")
        pos = match.end()
    out.append(html[pos:])
    return "".join(out)


TRANSFORMS: list[Callable[[str], str]] = [
    collapse_blank_lines,
    strip_empty_paragraphs,
    space_block_boundaries,
    center_emphasis_lines,
    wrap_inline_images,
    tighten_clusters,
]


def normalize_html(html: str) -> str:
    """Run every transform in order."""
    for transform in TRANSFORMS:
        html = transform(html)
    return html
