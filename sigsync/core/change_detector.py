"""Decide whether a mailbox's stored signature differs from the rendered one.

Gmail rewrites signatures on save (entity encoding, attribute quoting,
whitespace, ``<br/>`` forms). Both sides are normalized the same way before
comparison so an already-synchronized mailbox compares equal on the next run.

Markup is split into tags and text runs. Entities are decoded inside tags
and re-escaped in text, so escaped text never turns into markup. Whitespace
is collapsed to one space and only dropped where it cannot render: next to
block-level tags and between two structural tags.
"""
from __future__ import annotations
import html
import re
from typing import List, Optional

from .templates import normalize_font_quotes

_TAG = re.compile(r"(<[^>]*>)")
_TAG_NAME = re.compile(r"^<\s*/?\s*([A-Za-z][A-Za-z0-9]*)")
_FONT_FAMILY = re.compile(r"(font-family\s*:\s*)([^;<>]*)", re.IGNORECASE)
_SINGLE_QUOTED_ATTR = re.compile(r"(\s[\w:-]+)\s*=\s*'([^']*)'")
_DOUBLE_QUOTED_ATTR = re.compile(r'(\s[\w:-]+)\s*=\s*"')
_SELF_CLOSING = re.compile(r"\s*/>$")
_TAG_OPEN_SPACE = re.compile(r"^<\s+")
_TAG_CLOSE_SPACE = re.compile(r"\s+>$")
_WHITESPACE = re.compile(r"\s+")

# Whitespace on either side of these tags never renders
BLOCK_TAGS = frozenset({
    "blockquote", "br", "center", "div", "h1", "h2", "h3", "h4", "h5", "h6",
    "hr", "li", "ol", "p", "table", "tbody", "td", "tfoot", "th", "thead", "tr", "ul",
})
# Whitespace-only runs between two of these tags are layout, not content
STRUCTURAL_TAGS = BLOCK_TAGS | {"img"}


def _normalize_font_families(text: str) -> str:
    return _FONT_FAMILY.sub(lambda m: m.group(1) + normalize_font_quotes(m.group(2)), text)


def _tag_name(tag: str) -> str:
    match = _TAG_NAME.match(tag)
    return match.group(1).lower() if match else ""


def _normalize_tag(tag: str) -> str:
    tag = html.unescape(tag).replace("\xa0", " ")
    tag = _normalize_font_families(tag)
    tag = _SINGLE_QUOTED_ATTR.sub(r'\1="\2"', tag)
    tag = _DOUBLE_QUOTED_ATTR.sub(r'\1="', tag)
    tag = _WHITESPACE.sub(" ", tag)
    tag = _SELF_CLOSING.sub(">", tag)
    tag = _TAG_OPEN_SPACE.sub("<", tag)
    return _TAG_CLOSE_SPACE.sub(">", tag)


def _normalize_text(text: str) -> str:
    decoded = html.unescape(text).replace("\xa0", " ")
    return _WHITESPACE.sub(" ", html.escape(decoded, quote=False))


def normalize_signature(text: Optional[str]) -> str:
    """Canonical form of a signature used only for comparison."""
    if not text:
        return ""
    # Even indexes are text runs, odd indexes are tags
    parts = _TAG.split(text)
    names = [_tag_name(part) if index % 2 else "" for index, part in enumerate(parts)]
    last = len(parts) - 1

    normalized: List[str] = []
    for index, part in enumerate(parts):
        if index % 2:
            normalized.append(_normalize_tag(part))
            continue
        run = _normalize_text(part)
        before = names[index - 1] if index > 0 else None
        after = names[index + 1] if index < last else None
        if index == 0 or before in BLOCK_TAGS:
            run = run.lstrip(" ")
        if index == last or after in BLOCK_TAGS:
            run = run.rstrip(" ")
        if run == " " and before in STRUCTURAL_TAGS and after in STRUCTURAL_TAGS:
            run = ""
        normalized.append(run)
    return "".join(normalized)


def needs_update(current: Optional[str], desired: Optional[str]) -> bool:
    """True when the normalized stored and desired signatures differ."""
    return normalize_signature(current) != normalize_signature(desired)


class ChangeDetector:
    """Object form of :func:`needs_update` for injection into the pipeline."""

    def needs_update(self, current: Optional[str], desired: Optional[str]) -> bool:
        return needs_update(current, desired)
