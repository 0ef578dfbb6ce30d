"""Atom field extraction, including the YouTube channel feed extensions."""

from __future__ import annotations

import logging

# Bandit: parsing handled via defusedxml safe APIs
import xml.etree.ElementTree as ET  # nosec B405
from typing import Any, Dict, Optional

from . import text
from .elements import (
    ATOM_NS,
    child_text,
    find_child,
    iter_children,
    local_name,
    MEDIA_NS,
    media_duration,
    media_thumbnail,
    namespace,
    parse_iso_date,
    resolve_url,
    YOUTUBE_NS,
)

logger = logging.getLogger(__name__)

ITEM_TAG = "entry"


def is_channel(elem: ET.Element, root: ET.Element) -> bool:
    return elem is root


def is_item_parent(elem: ET.Element, root: ET.Element) -> bool:
    return elem is root


def _alternate_link(elem: ET.Element, base_url: Optional[str]) -> Optional[str]:
    """Return the ``rel="alternate"`` link (a missing rel means alternate)."""
    for link in iter_children(elem, "link", ATOM_NS):
        if link.attrib.get("rel", "alternate") == "alternate":
            href = resolve_url(link.attrib.get("href"), base_url)
            if href:
                return href
    return None


def _description(entry: ET.Element) -> Optional[str]:
    group = find_child(entry, "group", MEDIA_NS)
    if group is not None:
        media_description = child_text(group, "description", MEDIA_NS)
        if media_description:
            return media_description
    return child_text(entry, "summary", ATOM_NS) or child_text(entry, "content", ATOM_NS)


def read_item(entry: ET.Element, base_url: Optional[str]) -> Optional[Dict[str, Any]]:
    """Extract raw entry fields, or None when a required field is missing.

    Args:
        entry: ``<entry>`` element
        base_url: Base URL for resolving relative URLs

    Returns:
        Dict with identifier, title, published, media_url, description,
        duration and thumbnail_url
    """
    title = child_text(entry, "title", ATOM_NS)
    if not title:
        logger.debug("Skipping Atom entry without title")
        return None

    media_url = _alternate_link(entry, base_url)
    if not media_url:
        logger.debug("Skipping Atom entry %r without alternate link", title)
        return None

    published = parse_iso_date(child_text(entry, "published", ATOM_NS)) or parse_iso_date(
        child_text(entry, "updated", ATOM_NS)
    )
    if published is None:
        logger.debug("Skipping Atom entry %r without a valid publish date", title)
        return None

    identifier = (
        child_text(entry, "videoId", YOUTUBE_NS) or child_text(entry, "id", ATOM_NS) or media_url
    )
    return {
        "identifier": identifier,
        "title": title,
        "published": published,
        "media_url": media_url,
        "description": text.html_to_text(_description(entry)),
        "duration": media_duration(entry),
        "thumbnail_url": media_thumbnail(entry, base_url),
    }


def read_channel_field(fields: Dict[str, Any], elem: ET.Element, base_url: Optional[str]) -> None:
    """Record a direct child of ``<feed>`` into the channel field map."""
    if namespace(elem.tag) != ATOM_NS:
        return
    name = local_name(elem.tag)
    if name == "title":
        fields.setdefault("title", "".join(elem.itertext()).strip() or None)
    elif name == "link":
        rel = elem.attrib.get("rel", "alternate")
        href = resolve_url(elem.attrib.get("href"), base_url)
        if rel == "alternate" and href and not fields.get("link"):
            fields["link"] = href
    elif name == "subtitle":
        fields.setdefault("description", text.html_to_text("".join(elem.itertext())))
    elif name in ("logo", "icon"):
        url = resolve_url("".join(elem.itertext()), base_url)
        if url and not fields.get("thumbnail_url"):
            fields["thumbnail_url"] = url
