"""Feed Timeline - Media items and chapter timelines from RSS/Atom feeds.

This package provides:
- Streaming RSS/Atom parsing into media items and channel metadata
- Chapter extraction from item descriptions and short-form detection
- Merging of SponsorBlock segments into a gapless chapter timeline
- A playback tracker that follows the current chapter and skips sponsor segments

Programmatic API Example:
    >>> import feed_timeline
    >>>
    >>> config = feed_timeline.Config(
    ...     feeds=["https://www.youtube.com/feeds/videos.xml?channel_id=UC123"],
    ...     max_items=10,
    ...     merge_sponsor_segments=True,
    ... )
    >>> count, summary = feed_timeline.run_pipeline(config)

Service API Example (for daemon/service use):
    >>> from feed_timeline import service
    >>> result = service.run_from_config_file("config.yaml")
    >>> if not result.success:
    ...     print(f"Error: {result.error}")

CLI Usage:
    $ python -m feed_timeline.cli https://example.com/feed.xml
    $ python -m feed_timeline.cli --config config.yaml

Service Mode (for supervisor/systemd):
    $ python -m feed_timeline.service --config config.yaml
"""

from __future__ import annotations

from .chapters import extract_chapters
from .config import Config, load_config_file
from .feed import iter_items, parse_channel_metadata, parse_items
from .merge import ChapterMerger, InMemoryTimelineStore, validate_timeline
from .models import Chapter, ChannelInfo, MediaItem, SponsorSegment, Timeline
from .shorts import classify_short_form
from .timecode import parse_timecode
from .tracker import ChapterTimelineTracker
from .workflow import run_pipeline

__all__ = [
    "Chapter",
    "ChapterMerger",
    "ChapterTimelineTracker",
    "ChannelInfo",
    "Config",
    "InMemoryTimelineStore",
    "MediaItem",
    "SponsorSegment",
    "Timeline",
    "classify_short_form",
    "extract_chapters",
    "iter_items",
    "load_config_file",
    "parse_channel_metadata",
    "parse_items",
    "parse_timecode",
    "run_pipeline",
    "validate_timeline",
    "__version__",
]
# Note: 'cli' and 'service' are available via __getattr__ for lazy loading
__version__ = "0.3.0"

# Cache for lazy-loaded modules to prevent circular imports
_import_cache: dict[str, object] = {}


def __getattr__(name: str):
    if name in _import_cache:
        return _import_cache[name]

    if name in ("cli", "service"):
        import importlib

        module = importlib.import_module(f"{__name__}.{name}")
        _import_cache[name] = module
        return module
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
