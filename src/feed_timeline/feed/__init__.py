"""Syndication feed parsing.

This package provides:
- Streaming RSS 2.0 / RSS 1.0 / Atom parsing into media items
- Channel metadata extraction for subscription registration
- Fetch-and-parse helpers built on the shared HTTP session
"""

from .parser import (
    ATOM_VARIANT,
    FEED_VARIANTS,
    fetch_and_parse_feed,
    fetch_channel_metadata,
    FeedVariant,
    iter_items,
    parse_channel_metadata,
    parse_feed,
    parse_items,
    RSS_VARIANT,
)
from .text import html_to_text

__all__ = [
    "ATOM_VARIANT",
    "FEED_VARIANTS",
    "FeedVariant",
    "RSS_VARIANT",
    "fetch_and_parse_feed",
    "fetch_channel_metadata",
    "html_to_text",
    "iter_items",
    "parse_channel_metadata",
    "parse_feed",
    "parse_items",
]
