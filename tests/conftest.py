"""Shared fixtures and test utilities for feed_timeline tests.

This module contains:
- Test constants
- Helper functions for building feed documents and test objects
- Mock HTTP responses
- Pytest hooks for validating marker behavior

All test files can import from this module using pytest's conftest.py mechanism.
"""

from datetime import datetime, timezone

import pytest

from feed_timeline import config, models

# Test constants
TEST_BASE_URL = "https://example.com"
TEST_FEED_URL = "https://example.com/feed.xml"
TEST_MEDIA_URL = f"{TEST_BASE_URL}/episode.mp3"
TEST_CHANNEL_TITLE = "Test Channel"
TEST_CHANNEL_LINK = "https://example.com/channel"
TEST_ITEM_TITLE = "Item Title"
TEST_VIDEO_ID = "dQw4w9WgXcQ"
TEST_YOUTUBE_FEED_URL = "https://www.youtube.com/feeds/videos.xml?channel_id=UC123"
TEST_PUB_DATE = "Mon, 01 Jan 2024 10:00:00 +0000"
TEST_PUBLISHED = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)
TEST_CHAPTER_DESCRIPTION = "intro\n0:00 Start\n1:30 Middle\n3:00 End"

RSS_NAMESPACES = (
    'xmlns:itunes="http://www.itunes.com/dtds/podcast-1.0.dtd" '
    'xmlns:media="http://search.yahoo.com/mrss/"'
)
ATOM_NAMESPACES = (
    'xmlns="http://www.w3.org/2005/Atom" '
    'xmlns:yt="http://www.youtube.com/xml/schemas/2015" '
    'xmlns:media="http://search.yahoo.com/mrss/"'
)


def build_rss_item(
    title=TEST_ITEM_TITLE,
    media_url=TEST_MEDIA_URL,
    pub_date=TEST_PUB_DATE,
    guid=None,
    description=None,
    duration=None,
):
    """Build one RSS ``<item>`` element; None omits the field."""
    parts = []
    if title is not None:
        parts.append(f"<title>{title}</title>")
    if guid is not None:
        parts.append(f"<guid>{guid}</guid>")
    if media_url is not None:
        parts.append(f'<enclosure url="{media_url}" type="audio/mpeg" />')
    if pub_date is not None:
        parts.append(f"<pubDate>{pub_date}</pubDate>")
    if description is not None:
        parts.append(f"<description><![CDATA[{description}]]></description>")
    if duration is not None:
        parts.append(f"<itunes:duration>{duration}</itunes:duration>")
    return "<item>" + "".join(parts) + "</item>"


def build_rss_xml(title=TEST_CHANNEL_TITLE, link=TEST_CHANNEL_LINK, items=None, image_url=None):
    """Build an RSS 2.0 document.

    Args:
        title: Channel title; None omits it
        link: Channel link; None omits it
        items: Item XML strings (see `build_rss_item`)
        image_url: Optional channel image URL

    Returns:
        RSS XML string
    """
    channel_parts = []
    if title is not None:
        channel_parts.append(f"<title>{title}</title>")
    if link is not None:
        channel_parts.append(f"<link>{link}</link>")
    if image_url is not None:
        channel_parts.append(f"<image><url>{image_url}</url></image>")
    channel_parts.extend(items or [])
    return (
        f"<?xml version='1.0'?>\n<rss version=\"2.0\" {RSS_NAMESPACES}><channel>"
        + "".join(channel_parts)
        + "</channel></rss>"
    )


def build_atom_entry(
    title=TEST_ITEM_TITLE,
    video_id=TEST_VIDEO_ID,
    published="2024-01-01T10:00:00+00:00",
    description=None,
    link=None,
):
    """Build one YouTube-style Atom ``<entry>`` element."""
    href = link or f"https://www.youtube.com/watch?v={video_id}"
    media_group = ""
    if description is not None:
        media_group = (
            "<media:group>"
            f"<media:description>{description}</media:description>"
            f'<media:thumbnail url="https://i.ytimg.com/vi/{video_id}/hqdefault.jpg" />'
            "</media:group>"
        )
    return (
        "<entry>"
        f"<id>yt:video:{video_id}</id>"
        f"<yt:videoId>{video_id}</yt:videoId>"
        f"<title>{title}</title>"
        f'<link rel="alternate" href="{href}" />'
        f"<published>{published}</published>"
        f"{media_group}"
        "</entry>"
    )


def build_atom_xml(title=TEST_CHANNEL_TITLE, link=TEST_CHANNEL_LINK, entries=None):
    """Build an Atom document."""
    parts = []
    if title is not None:
        parts.append(f"<title>{title}</title>")
    if link is not None:
        parts.append(f'<link rel="alternate" href="{link}" />')
    parts.extend(entries or [])
    return f"<?xml version='1.0'?>\n<feed {ATOM_NAMESPACES}>" + "".join(parts) + "</feed>"


def create_test_config(**overrides):
    """Create a Config with test defaults."""
    defaults = {
        "feed_urls": [TEST_FEED_URL],
        "timeout": 5,
        "workers": 1,
    }
    defaults.update(overrides)
    return config.Config(**defaults)


def create_test_chapter(title, start, end=None, **overrides):
    """Create a Chapter with duration derived from start/end."""
    duration = end - start if end is not None else None
    return models.Chapter(title=title, start=start, end=end, duration=duration, **overrides)


class MockHTTPResponse:
    """Simple mock for HTTP responses used in integration-style tests."""

    def __init__(self, *, content=b"", url="", headers=None, chunks=None, status_code=200):
        self.content = content
        self.url = url
        self.headers = headers or {}
        self.status_code = status_code
        self._chunks = chunks if chunks is not None else [content]

    def raise_for_status(self):
        return None

    def iter_content(self, chunk_size=1):
        for chunk in self._chunks:
            yield chunk

    def json(self):
        import json

        return json.loads(self.content)

    def close(self):
        return None


def create_feed_response(feed_xml, url=TEST_FEED_URL):
    """Create MockHTTPResponse for a feed document."""
    body = feed_xml.encode("utf-8")
    return MockHTTPResponse(
        content=body,
        url=url,
        headers={"Content-Type": "application/rss+xml", "Content-Length": str(len(body))},
    )


def pytest_collection_modifyitems(config, items):
    """Fail fast when an explicit marker expression collects nothing."""
    marker_expr = config.getoption("-m", default=None)
    if marker_expr in ("unit", "integration"):
        if not [item for item in items if item.get_closest_marker(marker_expr)]:
            pytest.fail(f"ERROR: Running with -m {marker_expr} but no tests collected!")
