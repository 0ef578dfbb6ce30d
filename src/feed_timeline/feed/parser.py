"""Streaming RSS/Atom parsing into media items and channel metadata.

The document is read incrementally with ``defusedxml``'s ``iterparse``. Each
item element is turned into a `MediaItem` once its end tag has been seen and is
then cleared, so finished items do not stay in memory and a consumer never
observes a partially parsed item.

The feed flavour is chosen from the root element (``rss``/``RDF`` or Atom
``feed``); each flavour is a `FeedVariant` record of plain functions.
"""

from __future__ import annotations

import io
import logging

# Bandit: parsing handled via defusedxml safe APIs
import xml.etree.ElementTree as ET  # nosec B405
from datetime import datetime, timezone
from typing import Any, BinaryIO, Callable, Dict, Iterator, List, NamedTuple, Optional, Tuple, Union

from defusedxml import DefusedXmlException
from defusedxml.ElementTree import iterparse as safe_iterparse, ParseError as DefusedXMLParseError

from .. import config, downloader
from ..exceptions import MalformedDocumentError, MetadataNotFoundError
from ..models import ChannelInfo, MediaItem
from ..shorts import classify_short_form
from . import atom, rss
from .elements import local_name

logger = logging.getLogger(__name__)

Document = Union[bytes, str, BinaryIO]


class FeedVariant(NamedTuple):
    """Field readers for one feed flavour."""

    name: str
    item_tag: str
    is_channel: Callable[[ET.Element, ET.Element], bool]
    is_item_parent: Callable[[ET.Element, ET.Element], bool]
    read_item: Callable[[ET.Element, Optional[str]], Optional[Dict[str, Any]]]
    read_channel_field: Callable[[Dict[str, Any], ET.Element, Optional[str]], None]


RSS_VARIANT = FeedVariant(
    name="rss",
    item_tag=rss.ITEM_TAG,
    is_channel=rss.is_channel,
    is_item_parent=rss.is_item_parent,
    read_item=rss.read_item,
    read_channel_field=rss.read_channel_field,
)
ATOM_VARIANT = FeedVariant(
    name="atom",
    item_tag=atom.ITEM_TAG,
    is_channel=atom.is_channel,
    is_item_parent=atom.is_item_parent,
    read_item=atom.read_item,
    read_channel_field=atom.read_channel_field,
)

# Root element local name -> variant
FEED_VARIANTS: Dict[str, FeedVariant] = {
    "rss": RSS_VARIANT,
    "RDF": RSS_VARIANT,
    "feed": ATOM_VARIANT,
}


def _open_document(document: Document) -> Optional[BinaryIO]:
    """Wrap the document in a binary stream, or None if it is blank."""
    if isinstance(document, str):
        if not document.strip():
            return None
        return io.BytesIO(document.encode("utf-8"))
    if isinstance(document, (bytes, bytearray)):
        if not bytes(document).strip():
            return None
        return io.BytesIO(document)
    return document


def _build_media_item(fields: Dict[str, Any], feed_url: Optional[str]) -> MediaItem:
    short_form = classify_short_form(fields["title"], fields.get("description"))
    return MediaItem(
        identifier=fields["identifier"],
        title=fields["title"],
        published=fields["published"],
        media_url=fields["media_url"],
        description=fields.get("description"),
        duration=fields.get("duration"),
        thumbnail_url=fields.get("thumbnail_url"),
        is_short=short_form.is_short,
        is_likely_short=short_form.is_likely_short,
        feed_url=feed_url,
    )


class _FeedScan:
    """One pass over a feed document.

    Channel fields are collected as a side effect of iterating `items()`.
    """

    def __init__(self, document: Document, feed_url: Optional[str] = None) -> None:
        self.stream = _open_document(document)
        self.feed_url = feed_url
        self.variant: Optional[FeedVariant] = None
        self.channel_fields: Dict[str, Any] = {}

    def _channel_complete(self) -> bool:
        return bool(self.channel_fields.get("title") and self.channel_fields.get("link"))

    def items(  # noqa: C901 - single streaming state machine
        self,
        item_limit: Optional[int] = None,
        published_after: Optional[datetime] = None,
        metadata_only: bool = False,
    ) -> Iterator[MediaItem]:
        """Yield complete media items in document order.

        Args:
            item_limit: Stop after this many items have been yielded
            published_after: Exclude items published at or before this instant
            metadata_only: Collect channel fields only, yielding nothing

        Raises:
            MalformedDocumentError: If the document has no recognizable feed root
        """
        if self.stream is None:
            return

        root: Optional[ET.Element] = None
        stack: List[ET.Element] = []
        collected = 0
        skipped = 0

        try:
            for event, elem in safe_iterparse(self.stream, events=("start", "end")):
                if event == "start":
                    if root is None:
                        root = elem
                        self.variant = FEED_VARIANTS.get(local_name(elem.tag))
                        if self.variant is None:
                            raise MalformedDocumentError(
                                f"Unsupported feed root element: {local_name(elem.tag)!r}",
                                suggestion="Expected an RSS or Atom document",
                            )
                        logger.debug("Parsing %s feed %s", self.variant.name, self.feed_url or "")
                        if not metadata_only and item_limit == 0:
                            return
                    elif (
                        metadata_only
                        and local_name(elem.tag) == self.variant.item_tag
                        and self._channel_complete()
                    ):
                        return
                    stack.append(elem)
                    continue

                if not stack:
                    continue
                stack.pop()
                parent = stack[-1] if stack else None
                if parent is None or self.variant is None or root is None:
                    continue

                if local_name(elem.tag) == self.variant.item_tag and self.variant.is_item_parent(
                    parent, root
                ):
                    fields = None if metadata_only else self.variant.read_item(elem, self.feed_url)
                    elem.clear()
                    parent.remove(elem)
                    if metadata_only:
                        continue
                    if fields is None:
                        skipped += 1
                        continue
                    item = _build_media_item(fields, self.feed_url)
                    if published_after is not None and item.published <= published_after:
                        continue
                    collected += 1
                    yield item
                    if item_limit is not None and collected >= item_limit:
                        return
                elif self.variant.is_channel(parent, root):
                    self.variant.read_channel_field(self.channel_fields, elem, self.feed_url)
        except (DefusedXMLParseError, DefusedXmlException) as exc:
            if root is None or self.variant is None:
                raise MalformedDocumentError(f"Document is not a parseable feed: {exc}") from exc
            logger.warning(
                "Feed %s is malformed past its start, keeping %d parsed item(s): %s",
                self.feed_url or "",
                collected,
                exc,
            )
        finally:
            if skipped:
                logger.debug("Skipped %d incomplete item(s) in %s", skipped, self.feed_url or "")

        if root is None:
            raise MalformedDocumentError("Document contains no root element")


def _as_utc(moment: Optional[datetime]) -> Optional[datetime]:
    if moment is not None and moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def iter_items(
    document: Document,
    item_limit: Optional[int] = None,
    published_after: Optional[datetime] = None,
    feed_url: Optional[str] = None,
) -> Iterator[MediaItem]:
    """Stream media items from an RSS or Atom document.

    Args:
        document: Feed bytes, text or a binary stream
        item_limit: Stop after this many items; None reads the whole feed
        published_after: Exclude items published at or before this instant;
            excluded items do not stop the scan
        feed_url: Feed address, used to resolve relative URLs

    Yields:
        MediaItem objects in document order. A blank document yields nothing.

    Raises:
        MalformedDocumentError: If the document is not parseable as a feed
    """
    return _FeedScan(document, feed_url).items(item_limit, _as_utc(published_after))


def parse_items(
    document: Document,
    item_limit: Optional[int] = None,
    published_after: Optional[datetime] = None,
    feed_url: Optional[str] = None,
) -> List[MediaItem]:
    """Collect `iter_items` into a list."""
    return list(iter_items(document, item_limit, published_after, feed_url))


def parse_channel_metadata(document: Document, feed_url: Optional[str] = None) -> ChannelInfo:
    """Read channel-level metadata without collecting items.

    Args:
        document: Feed bytes, text or a binary stream
        feed_url: Feed address; used as the channel link when the feed has none

    Returns:
        ChannelInfo for the feed

    Raises:
        MetadataNotFoundError: If the channel title or link is missing
        MalformedDocumentError: If the document is not parseable as a feed
    """
    scan = _FeedScan(document, feed_url)
    for _ in scan.items(metadata_only=True):
        pass
    return _channel_info(scan.channel_fields, feed_url)


def parse_feed(
    document: Document,
    item_limit: Optional[int] = None,
    published_after: Optional[datetime] = None,
    feed_url: Optional[str] = None,
) -> Tuple[Optional[ChannelInfo], List[MediaItem]]:
    """Read media items and channel metadata in a single pass.

    Channel fields that follow the last item read are not seen when
    ``item_limit`` ends the scan early.

    Returns:
        Tuple of (channel, items); channel is None when the feed has no title

    Raises:
        MalformedDocumentError: If the document is not parseable as a feed
    """
    scan = _FeedScan(document, feed_url)
    items = list(scan.items(item_limit, _as_utc(published_after)))
    if scan.stream is None:
        return None, items
    try:
        channel = _channel_info(scan.channel_fields, feed_url)
    except MetadataNotFoundError as exc:
        logger.debug("No channel metadata for %s: %s", feed_url or "", exc)
        channel = None
    return channel, items


def _channel_info(fields: Dict[str, Any], feed_url: Optional[str]) -> ChannelInfo:
    title = fields.get("title")
    link = fields.get("link") or feed_url
    if not title:
        raise MetadataNotFoundError(
            f"Channel title not found in feed {feed_url or ''}".rstrip(),
            suggestion="Check that the URL points to an RSS or Atom channel feed",
        )
    if not link:
        raise MetadataNotFoundError(
            "Channel link not found",
            suggestion="Pass feed_url so the feed address can be used as link",
        )
    return ChannelInfo(
        title=title,
        link=link,
        description=fields.get("description"),
        thumbnail_url=fields.get("thumbnail_url"),
    )


def fetch_and_parse_feed(cfg: config.Config, url: str) -> List[MediaItem]:
    """Fetch a feed and parse its items with the configured limit and cutoff.

    Raises:
        FeedFetchError: If the feed cannot be fetched
        MalformedDocumentError: If the response is not a feed
    """
    document = downloader.fetch_feed(url, cfg.user_agent, cfg.timeout)
    items = parse_items(
        document,
        item_limit=cfg.max_items,
        published_after=cfg.published_after,
        feed_url=url,
    )
    logger.info("Parsed %d item(s) from %s", len(items), url)
    return items


def fetch_channel_metadata(cfg: config.Config, url: str) -> ChannelInfo:
    """Fetch a feed and read its channel metadata.

    The subscription is registered under the feed address, so the returned
    link is always ``url``.

    Raises:
        FeedFetchError: If the feed cannot be fetched
        MetadataNotFoundError: If the channel metadata is missing
    """
    document = downloader.fetch_feed(url, cfg.user_agent, cfg.timeout)
    info = parse_channel_metadata(document, feed_url=url)
    return ChannelInfo(
        title=info.title,
        link=url,
        description=info.description,
        thumbnail_url=info.thumbnail_url,
    )
