"""HTML-to-text conversion for feed descriptions.

Line structure matters here: chapter lists are one time code per line, so block
tags and ``<br>`` become newlines instead of being collapsed into spaces.
"""

from __future__ import annotations

import re
from html import unescape
from html.parser import HTMLParser
from typing import List, Optional

_BREAK_TAGS = frozenset({"br", "p", "div", "li", "tr", "h1", "h2", "h3", "h4", "h5", "h6"})
_TAG_PATTERN = re.compile(r"<[a-zA-Z/!][^>]*>")
_INLINE_SPACE_PATTERN = re.compile(r"[ \t\f\v]+")
_BLANK_LINES_PATTERN = re.compile(r"\n{3,}")


class _HTMLTextExtractor(HTMLParser):
    """Collect text data, turning block boundaries into newlines."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.parts: List[str] = []

    def handle_data(self, data: str) -> None:
        self.parts.append(data)

    def handle_starttag(self, tag, attrs):
        if tag in _BREAK_TAGS:
            self.parts.append("\n")

    def handle_endtag(self, tag):
        if tag in _BREAK_TAGS and tag != "br":
            self.parts.append("\n")

    def handle_startendtag(self, tag, attrs):
        if tag in _BREAK_TAGS:
            self.parts.append("\n")

    def get_text(self) -> str:
        return "".join(self.parts)


def _normalize_lines(text: str) -> str:
    lines = [_INLINE_SPACE_PATTERN.sub(" ", line).strip() for line in text.splitlines()]
    return _BLANK_LINES_PATTERN.sub("\n\n", "\n".join(lines)).strip()


def html_to_text(text: Optional[str]) -> Optional[str]:
    """Convert a possibly-HTML description to plain text.

    Plain text passes through with entities decoded and per-line whitespace
    normalized. Markup is stripped with block tags mapped to line breaks.

    Args:
        text: Description text, possibly containing HTML

    Returns:
        Plain text, or None when nothing is left
    """
    if not text:
        return None

    if not _TAG_PATTERN.search(text):
        cleaned = _normalize_lines(unescape(text))
        return cleaned or None

    extractor = _HTMLTextExtractor()
    extractor.feed(text)
    extractor.close()
    cleaned = _normalize_lines(extractor.get_text())
    return cleaned or None
