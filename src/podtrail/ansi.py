"""ANSI escape handling: stripping for matching, HTML conversion for display."""

from __future__ import annotations

import html
import re

from rich.style import Style
from rich.text import Text

_SGR_RE = re.compile(r"\x1b\[[0-9;]*m")


def strip_ansi(text: str) -> str:
    """Remove SGR color/formatting sequences, returning plain text."""
    return _SGR_RE.sub("", text)


def ansi_to_text(raw: str) -> Text:
    """Decode ANSI sequences into a rich Text with styled spans."""
    return Text.from_ansi(raw, end="")


def ansi_to_html(raw: str) -> str:
    """Convert ANSI escape codes to HTML spans with inline color styles.

    Text content is XML-escaped, so the only tags in the result are the
    `<span>` wrappers emitted here.
    """
    text = ansi_to_text(raw)
    plain = text.plain
    if not text.spans:
        return html.escape(plain, quote=False)

    # Cut the text at every span boundary; each run gets the combined style of its spans
    cuts = {0, len(plain)}
    for span in text.spans:
        cuts.add(span.start)
        cuts.add(span.end)
    bounds = sorted(c for c in cuts if 0 <= c <= len(plain))

    parts: list[str] = []
    for start, end in zip(bounds, bounds[1:], strict=False):
        if start == end:
            continue
        chunk = html.escape(plain[start:end], quote=False)
        css = _css_at(text, start)
        parts.append(f'<span style="{css}">{chunk}</span>' if css else chunk)
    return "".join(parts)


def _css_at(text: Text, offset: int) -> str:
    """CSS for the combined style of all spans covering `offset`."""
    style = Style()
    for span in text.spans:
        if span.start <= offset < span.end:
            style += span.style if isinstance(span.style, Style) else Style.parse(span.style)
    if not style:
        return ""
    return style.get_html_style()
