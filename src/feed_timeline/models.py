from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, NamedTuple, Optional, Tuple


class ChapterSource(str, Enum):
    """Where a chapter's boundaries came from."""

    NATIVE = "native"
    SPONSOR = "sponsor"
    MERGED = "merged"


class TrackerState(str, Enum):
    NO_TIMELINE = "no_timeline"
    TRACKING = "tracking"


class ShortFormResult(NamedTuple):
    """Advisory short-form signals for a media item."""

    is_short: bool
    is_likely_short: bool


@dataclass(frozen=True)
class MediaItem:
    """A media item discovered in a syndication feed."""

    identifier: str
    title: str
    published: datetime
    media_url: str
    description: Optional[str] = None
    duration: Optional[float] = None
    thumbnail_url: Optional[str] = None
    is_short: bool = False
    is_likely_short: bool = False
    feed_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identifier": self.identifier,
            "title": self.title,
            "published": self.published.isoformat(),
            "media_url": self.media_url,
            "description": self.description,
            "duration": self.duration,
            "thumbnail_url": self.thumbnail_url,
            "is_short": self.is_short,
            "is_likely_short": self.is_likely_short,
            "feed_url": self.feed_url,
        }


@dataclass(frozen=True)
class ChannelInfo:
    """Channel-level metadata needed to register a subscription."""

    title: str
    link: str
    description: Optional[str] = None
    thumbnail_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "link": self.link,
            "description": self.description,
            "thumbnail_url": self.thumbnail_url,
        }


@dataclass(frozen=True)
class Chapter:
    """A titled interval of a media item's playback timeline.

    ``is_active`` is False for sponsor/ad segments the player should skip.
    """

    title: str
    start: float
    end: Optional[float] = None
    duration: Optional[float] = None
    is_active: bool = True
    source: ChapterSource = ChapterSource.NATIVE
    category: Optional[str] = None

    def with_interval(self, start: float, end: Optional[float]) -> Chapter:
        """Return a copy covering ``[start, end)``."""
        duration = end - start if end is not None else None
        return replace(self, start=start, end=end, duration=duration)

    def contains(self, time: float) -> bool:
        if time < self.start:
            return False
        return self.end is None or time < self.end

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "title": self.title,
            "start": self.start,
            "end": self.end,
            "duration": self.duration,
            "is_active": self.is_active,
            "source": self.source.value,
        }
        if self.category:
            data["category"] = self.category
        return data


@dataclass(frozen=True)
class SponsorSegment:
    """A segment reported by the sponsor-segment provider."""

    start: float
    end: float
    category: str


@dataclass(frozen=True)
class Timeline:
    """Immutable snapshot of an item's merged chapters.

    ``generation`` orders snapshots of the same item and is not part of equality,
    so two recomputations over the same inputs compare equal.
    """

    item_id: str
    chapters: Tuple[Chapter, ...] = ()
    total_duration: Optional[float] = None
    generation: int = field(default=0, compare=False)

    def __len__(self) -> int:
        return len(self.chapters)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item_id": self.item_id,
            "generation": self.generation,
            "total_duration": self.total_duration,
            "chapters": [chapter.to_dict() for chapter in self.chapters],
        }
