"""Search highlighting for pre-rendered HTML and rich text lines."""

from __future__ import annotations

import html
import re

from rich.text import Text

from podtrail.ansi import ansi_to_html, ansi_to_text
from podtrail.colors import search_match_style

# A tag or a run of text between tags
_SEGMENT_RE = re.compile(r"(<[^>]*>)|([^<]+)")

MARK_OPEN = '<mark class="search-match">'
MARK_CLOSE = "</mark>"


def highlight_markup(markup: str, query: str) -> str:
    """Wrap case-insensitive occurrences of `query` in `<mark>` tags.

    Only text segments between tags are rewritten, so existing markup (and
    attribute values inside it) is never split or altered. Matching runs on
    the unescaped segment text, so a query never lands inside an entity such
    as `&amp;`.
    """
    if not query:
        return markup
    pattern = re.compile(re.escape(query), re.IGNORECASE)

    def _replace(m: re.Match[str]) -> str:
        tag, segment = m.group(1), m.group(2)
        if tag is not None:
            return tag
        text = html.unescape(segment)
        parts: list[str] = []
        pos = 0
        for match in pattern.finditer(text):
            parts.append(html.escape(text[pos : match.start()], quote=False))
            parts.append(f"{MARK_OPEN}{html.escape(match.group(0), quote=False)}{MARK_CLOSE}")
            pos = match.end()
        if not parts:
            return segment
        parts.append(html.escape(text[pos:], quote=False))
        return "".join(parts)

    return _SEGMENT_RE.sub(_replace, markup)


def render_markup(raw: str, query: str = "") -> str:
    """ANSI line to HTML with optional search highlighting."""
    markup = ansi_to_html(raw)
    return highlight_markup(markup, query) if query else markup


def render_text(raw: str, query: str = "") -> Text:
    """ANSI line to a rich Text with optional search highlighting."""
    text = ansi_to_text(raw)
    if query:
        text.highlight_words([query], style=search_match_style(), case_sensitive=False)
    return text
