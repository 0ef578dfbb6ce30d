"""Core ingestion pipeline for feed_timeline."""

from __future__ import annotations

import json
import logging
import os
from concurrent.futures import as_completed, ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import yaml

from . import config, downloader, feed, progress
from .chapters import extract_chapters
from .exceptions import (
    FeedTimelineError,
    InvalidTimelineError,
    SponsorFetchError,
)
from .merge import ChapterMerger
from .models import ChannelInfo, Chapter, MediaItem, Timeline
from .sponsor import SponsorBlockClient

logger = logging.getLogger(__name__)

FEEDS_PROGRESS_LABEL = "Feeds"


@dataclass
class IngestedItem:
    """A media item with its description chapters and merged timeline."""

    item: MediaItem
    chapters: List[Chapter] = field(default_factory=list)
    timeline: Optional[Timeline] = None

    def to_dict(self) -> Dict[str, Any]:
        data = self.item.to_dict()
        data["chapters"] = [chapter.to_dict() for chapter in self.chapters]
        if self.timeline is not None:
            data["timeline"] = self.timeline.to_dict()
        return data


@dataclass
class FeedIngestResult:
    """Outcome of ingesting one feed.

    Attributes:
        feed_url: Feed address
        channel: Channel metadata; None when the feed carries none
        items: Ingested items in document order
        error: Error message when the feed failed, None otherwise
    """

    feed_url: str
    channel: Optional[ChannelInfo] = None
    items: List[IngestedItem] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "feed_url": self.feed_url,
            "channel": self.channel.to_dict() if self.channel else None,
            "items": [item.to_dict() for item in self.items],
        }
        if self.error:
            data["error"] = self.error
        return data


def apply_log_level(level: str, log_file: Optional[str] = None) -> None:
    """Apply logging level to root logger and configure handlers.

    Args:
        level: Log level string (e.g., 'DEBUG', 'INFO', 'WARNING')
        log_file: Optional path to log file. If provided, logs will be written to both
                  console and file.

    Raises:
        ValueError: If log level is invalid
        OSError: If log file cannot be created or written to
    """
    numeric_level = getattr(logging, str(level).upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {level}")

    root_logger = logging.getLogger()
    log_format = "%(asctime)s %(levelname)s %(name)s: %(message)s"

    if not root_logger.handlers:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(numeric_level)
        console_handler.setFormatter(logging.Formatter(log_format))
        root_logger.addHandler(console_handler)
        root_logger.setLevel(numeric_level)
    else:
        root_logger.setLevel(numeric_level)
        for handler in root_logger.handlers:
            handler.setLevel(numeric_level)

    if log_file:
        file_handler_exists = any(
            isinstance(h, logging.FileHandler) and h.baseFilename == os.path.abspath(log_file)
            for h in root_logger.handlers
        )
        if not file_handler_exists:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
            file_handler.setLevel(numeric_level)
            file_handler.setFormatter(logging.Formatter(log_format))
            root_logger.addHandler(file_handler)
            logger.info(f"Logging to file: {log_file}")

    logger.setLevel(numeric_level)


def _merge_item(merger: ChapterMerger, item: MediaItem, chapters: List[Chapter]) -> Optional[Timeline]:
    """Merge sponsor segments into an item's chapters; None when merging fails."""
    try:
        timeline = merger.merge_or_refresh(item.identifier, chapters, total_duration=item.duration)
    except (SponsorFetchError, InvalidTimelineError) as exc:
        logger.warning("Keeping description chapters for %r: %s", item.title, exc)
        return None
    if timeline is None:
        timeline = merger.cached(item.identifier)
    return timeline


def ingest_feed(
    cfg: config.Config, url: str, merger: Optional[ChapterMerger] = None
) -> FeedIngestResult:
    """Fetch one feed and derive chapters for each of its items.

    In metadata-only mode only the channel metadata is read.

    Args:
        cfg: Configuration (item limit, cutoff and HTTP settings)
        url: Feed URL
        merger: When given, sponsor segments are merged into each item's chapters

    Returns:
        FeedIngestResult for the feed

    Raises:
        FeedFetchError: If the feed cannot be fetched
        MalformedDocumentError: If the document is not a feed
        MetadataNotFoundError: In metadata-only mode, if the channel has no title
    """
    if cfg.metadata_only:
        channel = feed.fetch_channel_metadata(cfg, url)
        logger.info("Channel %r at %s", channel.title, url)
        return FeedIngestResult(feed_url=url, channel=channel)

    document = downloader.fetch_feed(url, cfg.user_agent, cfg.timeout)
    channel, items = feed.parse_feed(
        document,
        item_limit=cfg.max_items,
        published_after=cfg.published_after,
        feed_url=url,
    )

    ingested: List[IngestedItem] = []
    for item in items:
        chapters = extract_chapters(item.description, item.duration)
        timeline = _merge_item(merger, item, chapters) if merger is not None else None
        ingested.append(IngestedItem(item=item, chapters=chapters, timeline=timeline))

    with_chapters = sum(1 for entry in ingested if entry.chapters)
    logger.info(
        "Ingested %d item(s) from %s (%d with chapters)", len(ingested), url, with_chapters
    )
    return FeedIngestResult(feed_url=url, channel=channel, items=ingested)


def _build_merger(cfg: config.Config) -> Optional[ChapterMerger]:
    if not cfg.merge_sponsor_segments:
        return None
    return ChapterMerger(
        provider=SponsorBlockClient.from_config(cfg),
        skip_categories=cfg.skip_categories,
    )


def _ingest_all(
    cfg: config.Config, urls: Sequence[str], merger: Optional[ChapterMerger]
) -> List[FeedIngestResult]:
    """Ingest feeds concurrently; results keep the order of ``urls``."""
    results: Dict[str, FeedIngestResult] = {}
    max_workers = max(1, min(cfg.workers, len(urls)))
    with progress.progress_context(len(urls), FEEDS_PROGRESS_LABEL) as reporter:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            future_map = {executor.submit(ingest_feed, cfg, url, merger): url for url in urls}
            for future in as_completed(future_map):
                url = future_map[future]
                try:
                    results[url] = future.result()
                except FeedTimelineError as exc:
                    logger.warning("Failed to ingest %s: %s", url, exc)
                    results[url] = FeedIngestResult(feed_url=url, error=str(exc))
                reporter.update(1)
    return [results[url] for url in urls]


def write_output(results: Sequence[FeedIngestResult], path: str, output_format: str) -> None:
    """Write ingest results to ``path`` as JSON or YAML.

    Raises:
        OSError: If file writing fails
    """
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    content = {"feeds": [result.to_dict() for result in results]}
    with open(path, "w", encoding="utf-8") as f:
        if output_format == "yaml":
            yaml.dump(content, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
        else:
            json.dump(content, f, indent=2, ensure_ascii=False)
    logger.info("Wrote results to %s", path)


def _generate_pipeline_summary(
    cfg: config.Config, results: Sequence[FeedIngestResult]
) -> Tuple[int, str]:
    failed = [result for result in results if not result.ok]
    if cfg.metadata_only:
        count = sum(1 for result in results if result.channel is not None)
        lines = [f"Read channel metadata for {count}/{len(results)} feed(s)"]
    else:
        count = sum(len(result.items) for result in results)
        with_chapters = sum(1 for result in results for entry in result.items if entry.chapters)
        shorts = sum(1 for result in results for entry in result.items if entry.item.is_short)
        lines = [
            f"Ingested {count} item(s) from {len(results) - len(failed)}/{len(results)} feed(s)",
            f"  - Items with chapters: {with_chapters}",
            f"  - Short-form items: {shorts}",
        ]
        if cfg.merge_sponsor_segments:
            merged = sum(
                1 for result in results for entry in result.items if entry.timeline is not None
            )
            lines.append(f"  - Merged timelines: {merged}")
    for result in failed:
        lines.append(f"  - Failed: {result.feed_url} ({result.error})")
    if cfg.output_file:
        lines.append(f"  - Output file: {cfg.output_file}")
    return count, "\n".join(lines)


def run_pipeline(cfg: config.Config) -> Tuple[int, str]:
    """Execute the feed ingestion pipeline.

    Each configured feed is fetched and parsed on a worker thread; items get
    their description chapters and, when `merge_sponsor_segments` is on, a
    timeline merged with SponsorBlock segments. A failing feed does not stop
    the others.

    Args:
        cfg: Configuration object. See `Config` for available options.

    Returns:
        Tuple[int, str]: A tuple containing:

            - count (int): Number of items ingested (channels in metadata-only mode)
            - summary (str): Human-readable summary message describing the run

    Raises:
        ValueError: If no feed URL is configured
        FeedTimelineError: If every feed failed
        OSError: If the output file cannot be written

    Example:
        >>> from feed_timeline import Config, run_pipeline
        >>> cfg = Config(feeds=["https://example.com/feed.xml"], max_items=5)
        >>> count, summary = run_pipeline(cfg)
    """
    if not cfg.feed_urls:
        raise ValueError("At least one feed URL is required")

    results = _ingest_all(cfg, cfg.feed_urls, _build_merger(cfg))
    if all(not result.ok for result in results):
        raise FeedTimelineError(
            f"All {len(results)} feed(s) failed; first error: {results[0].error}"
        )

    if cfg.output_file:
        write_output(results, cfg.output_file, cfg.output_format)
    return _generate_pipeline_summary(cfg, results)
