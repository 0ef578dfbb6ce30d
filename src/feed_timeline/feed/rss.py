"""RSS 2.0 / RSS 1.0 (RDF) field extraction."""

from __future__ import annotations

import logging

# Bandit: parsing handled via defusedxml safe APIs
import xml.etree.ElementTree as ET  # nosec B405
from typing import Any, Dict, Optional

from . import text
from .elements import (
    child_text,
    find_child,
    iter_children,
    ITUNES_NS,
    local_name,
    media_duration,
    media_thumbnail,
    namespace,
    parse_duration,
    parse_iso_date,
    parse_rfc822_date,
    resolve_url,
)

logger = logging.getLogger(__name__)

ITEM_TAG = "item"
CHANNEL_TAG = "channel"
DUBLIN_CORE_NS = "http://purl.org/dc/elements/1.1/"
RSS1_NS = "http://purl.org/rss/1.0/"
_PLAIN_NAMESPACES = ("", RSS1_NS)


def is_channel(elem: ET.Element, root: ET.Element) -> bool:
    return local_name(elem.tag) == CHANNEL_TAG


def is_item_parent(elem: ET.Element, root: ET.Element) -> bool:
    # RSS 2.0 nests items in <channel>; RSS 1.0 puts them directly under <rdf:RDF>
    return elem is root or local_name(elem.tag) == CHANNEL_TAG


def _plain_text(elem: ET.Element, name: str) -> Optional[str]:
    """Text of an un-namespaced child, or its RSS 1.0 namespaced counterpart."""
    return child_text(elem, name) or child_text(elem, name, RSS1_NS)


def _enclosure_url(item: ET.Element, base_url: Optional[str]) -> Optional[str]:
    for el in iter_children(item, "enclosure", ns=None):
        url = resolve_url(el.attrib.get("url"), base_url)
        if url:
            return url
    return None


def _thumbnail_url(item: ET.Element, base_url: Optional[str]) -> Optional[str]:
    itunes_image = find_child(item, "image", ITUNES_NS)
    if itunes_image is not None:
        href = resolve_url(itunes_image.attrib.get("href"), base_url)
        if href:
            return href
    return media_thumbnail(item, base_url)


def read_item(item: ET.Element, base_url: Optional[str]) -> Optional[Dict[str, Any]]:
    """Extract raw item fields, or None when a required field is missing.

    Args:
        item: ``<item>`` element
        base_url: Base URL for resolving relative URLs

    Returns:
        Dict with identifier, title, published, media_url, description,
        duration and thumbnail_url
    """
    title = _plain_text(item, "title")
    if not title:
        logger.debug("Skipping RSS item without title")
        return None

    link = resolve_url(_plain_text(item, "link"), base_url)
    media_url = _enclosure_url(item, base_url) or link
    if not media_url:
        logger.debug("Skipping RSS item %r without link or enclosure", title)
        return None

    published = parse_rfc822_date(child_text(item, "pubDate")) or parse_iso_date(
        child_text(item, "date", DUBLIN_CORE_NS)
    )
    if published is None:
        logger.debug("Skipping RSS item %r without a valid publish date", title)
        return None

    raw_description = _plain_text(item, "description") or child_text(item, "summary", ITUNES_NS)
    duration = parse_duration(child_text(item, "duration", ITUNES_NS))
    if duration is None:
        duration = media_duration(item)

    return {
        "identifier": child_text(item, "guid") or link or media_url,
        "title": title,
        "published": published,
        "media_url": media_url,
        "description": text.html_to_text(raw_description),
        "duration": duration,
        "thumbnail_url": _thumbnail_url(item, base_url),
    }


def read_channel_field(fields: Dict[str, Any], elem: ET.Element, base_url: Optional[str]) -> None:
    """Record a direct child of ``<channel>`` into the channel field map."""
    name = local_name(elem.tag)
    ns = namespace(elem.tag) or ""

    if name == "title" and ns in _PLAIN_NAMESPACES:
        fields.setdefault("title", "".join(elem.itertext()).strip() or None)
    elif name == "link" and ns in _PLAIN_NAMESPACES:
        fields.setdefault("link", resolve_url("".join(elem.itertext()), base_url))
    elif name == "description" and ns in _PLAIN_NAMESPACES:
        fields.setdefault("description", text.html_to_text("".join(elem.itertext())))
    elif name == "image" and ns in _PLAIN_NAMESPACES:
        fields.setdefault("thumbnail_url", resolve_url(_plain_text(elem, "url"), base_url))
    elif name == "image" and ns == ITUNES_NS:
        href = resolve_url(elem.attrib.get("href"), base_url)
        if href and not fields.get("thumbnail_url"):
            fields["thumbnail_url"] = href
