"""Namespace-tolerant helpers for reading feed XML elements."""

from __future__ import annotations

import logging

# Bandit: parsing handled via defusedxml safe APIs
import xml.etree.ElementTree as ET  # nosec B405
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Iterator, Optional
from urllib.parse import urljoin

from ..exceptions import InvalidTimeCodeError
from ..timecode import parse_timecode

logger = logging.getLogger(__name__)

ATOM_NS = "http://www.w3.org/2005/Atom"
ITUNES_NS = "http://www.itunes.com/dtds/podcast-1.0.dtd"
MEDIA_NS = "http://search.yahoo.com/mrss/"
YOUTUBE_NS = "http://www.youtube.com/xml/schemas/2015"


def local_name(tag: object) -> str:
    """Return the tag name without its ``{namespace}`` prefix."""
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1]


def namespace(tag: object) -> Optional[str]:
    if isinstance(tag, str) and tag.startswith("{"):
        return tag[1:].split("}", 1)[0]
    return None


def iter_children(elem: ET.Element, name: str, ns: Optional[str] = "") -> Iterator[ET.Element]:
    """Iterate direct children with the given local name.

    Args:
        elem: Parent element
        name: Local tag name
        ns: Required namespace; ``""`` means no namespace, None matches any
    """
    for child in elem:
        if local_name(child.tag) != name:
            continue
        if ns is None or (namespace(child.tag) or "") == ns:
            yield child


def find_child(elem: ET.Element, name: str, ns: Optional[str] = "") -> Optional[ET.Element]:
    return next(iter_children(elem, name, ns), None)


def child_text(elem: ET.Element, name: str, ns: Optional[str] = "") -> Optional[str]:
    """Return the stripped text of the first matching child, or None if empty."""
    child = find_child(elem, name, ns)
    if child is None:
        return None
    text = "".join(child.itertext()).strip()
    return text or None


def resolve_url(value: Optional[str], base_url: Optional[str]) -> Optional[str]:
    if not value or not value.strip():
        return None
    if base_url:
        return urljoin(base_url, value.strip())
    return value.strip()


def _ensure_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_rfc822_date(text: Optional[str]) -> Optional[datetime]:
    """Parse an RSS ``pubDate``; naive values are taken as UTC."""
    if not text:
        return None
    try:
        parsed = parsedate_to_datetime(text.strip())
    except (TypeError, ValueError, IndexError):
        parsed = None
    if parsed is None:
        logger.debug("Unparsable RFC 822 date: %s", text)
        return None
    return _ensure_aware(parsed)


def parse_iso_date(text: Optional[str]) -> Optional[datetime]:
    """Parse an Atom/ISO 8601 timestamp; naive values are taken as UTC."""
    if not text:
        return None
    try:
        return _ensure_aware(datetime.fromisoformat(text.strip().replace("Z", "+00:00")))
    except ValueError:
        logger.debug("Unparsable ISO 8601 date: %s", text)
        return None


def parse_duration(text: Optional[str]) -> Optional[float]:
    """Parse a duration given as seconds, ``m:s`` or ``h:m:s``."""
    if not text:
        return None
    value = text.strip()
    try:
        if ":" in value:
            return parse_timecode(value)
        seconds = float(value)
    except (InvalidTimeCodeError, ValueError):
        logger.debug("Unparsable duration: %s", text)
        return None
    return seconds if seconds >= 0 else None


def media_thumbnail(elem: ET.Element, base_url: Optional[str]) -> Optional[str]:
    """Return the first ``media:thumbnail`` URL under elem or its ``media:group``."""
    for container in (elem, find_child(elem, "group", MEDIA_NS)):
        if container is None:
            continue
        thumb = find_child(container, "thumbnail", MEDIA_NS)
        if thumb is not None:
            url = resolve_url(thumb.attrib.get("url"), base_url)
            if url:
                return url
    return None


def media_duration(elem: ET.Element) -> Optional[float]:
    """Return the ``duration`` attribute of ``media:content`` under elem or its group."""
    for container in (elem, find_child(elem, "group", MEDIA_NS)):
        if container is None:
            continue
        content = find_child(container, "content", MEDIA_NS)
        if content is not None:
            duration = parse_duration(content.attrib.get("duration"))
            if duration is not None:
                return duration
    return None
