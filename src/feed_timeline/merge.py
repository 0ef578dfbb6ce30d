"""Merging description chapters with sponsor segments.

Sponsor segments are inserted first and always keep their boundaries. Native
chapters are clipped around them, so a sponsor read in the middle of a chapter
splits that chapter in two. Uncovered stretches become untitled chapters, which
keeps the merged timeline gapless from 0 to the item's duration.

`ChapterMerger` caches merged timelines per item. Every recomputation gets a new
per-item generation; a store only accepts a snapshot whose generation is higher
than the one it holds, and snapshots are swapped in whole.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import replace
from typing import Callable, Collection, Dict, List, Optional, Protocol, Sequence, Tuple

from .exceptions import InvalidTimelineError, StaleCacheConflict
from .models import Chapter, ChapterSource, SponsorSegment, Timeline
from .sponsor import SponsorSegmentProvider

logger = logging.getLogger(__name__)

BOUNDARY_TOLERANCE = 1e-9

SPONSOR_CATEGORY_TITLES = {
    "sponsor": "Sponsor",
    "selfpromo": "Self Promotion",
    "interaction": "Interaction Reminder",
    "intro": "Intermission/Intro",
    "outro": "Endcards/Credits",
    "preview": "Preview/Recap",
    "music_offtopic": "Non-Music Section",
    "filler": "Filler",
}


def _is_sponsor_active(category: str, skip_categories: Optional[Collection[str]]) -> bool:
    # No skip preferences means every sponsor category is skipped
    if skip_categories is None:
        return False
    return category not in skip_categories


def _sponsor_chapters(
    segments: Sequence[SponsorSegment],
    limit: float,
    skip_categories: Optional[Collection[str]],
) -> List[Chapter]:
    """Turn segments into non-overlapping sponsor chapters clipped to ``limit``."""
    chapters: List[Chapter] = []
    cursor = 0.0
    finite = [s for s in segments if math.isfinite(s.start) and math.isfinite(s.end)]
    for segment in sorted(finite, key=lambda s: (s.start, s.end)):
        start = max(segment.start, cursor)
        end = min(segment.end, limit)
        if end <= start:
            continue
        chapters.append(
            Chapter(
                title=SPONSOR_CATEGORY_TITLES.get(segment.category, segment.category),
                start=start,
                end=end,
                duration=end - start,
                is_active=_is_sponsor_active(segment.category, skip_categories),
                source=ChapterSource.SPONSOR,
                category=segment.category,
            )
        )
        cursor = end
    return chapters


def _native_intervals(chapters: Sequence[Chapter], limit: float) -> List[Tuple[Chapter, float, float]]:
    intervals: List[Tuple[Chapter, float, float]] = []
    for index, chapter in enumerate(chapters):
        if chapter.end is not None:
            end = chapter.end
        elif index + 1 < len(chapters):
            end = chapters[index + 1].start
        else:
            end = limit
        end = min(end, limit)
        if end > chapter.start:
            intervals.append((chapter, chapter.start, end))
    return intervals


def _subtract(
    chapter: Chapter, start: float, end: float, sponsors: Sequence[Chapter]
) -> List[Chapter]:
    """Clip ``[start, end)`` of a native chapter around sponsor chapters."""
    pieces: List[Tuple[float, float]] = []
    cursor = start
    for sponsor in sponsors:
        sponsor_end = sponsor.end if sponsor.end is not None else math.inf
        if sponsor_end <= cursor:
            continue
        if sponsor.start >= end:
            break
        if sponsor.start > cursor:
            pieces.append((cursor, sponsor.start))
        cursor = max(cursor, sponsor_end)
        if cursor >= end:
            break
    if cursor < end:
        pieces.append((cursor, end))

    clipped = pieces != [(start, end)]
    source = ChapterSource.MERGED if clipped else chapter.source
    return [
        replace(chapter, start=piece_start, end=piece_end, is_active=True, source=source)
        for piece_start, piece_end in pieces
    ]


def _filler(start: float, end: float) -> Chapter:
    return Chapter(title="", start=start, end=end, is_active=True, source=ChapterSource.MERGED)


def _finalize(chapter: Chapter) -> Chapter:
    end = None if chapter.end is None or math.isinf(chapter.end) else chapter.end
    return chapter.with_interval(chapter.start, end)


def merge_chapters(
    native_chapters: Sequence[Chapter],
    sponsor_segments: Optional[Sequence[SponsorSegment]] = None,
    total_duration: Optional[float] = None,
    skip_categories: Optional[Collection[str]] = None,
) -> List[Chapter]:
    """Combine native chapters and sponsor segments into one gapless timeline.

    Args:
        native_chapters: Chapters in timeline order (e.g. from a description)
        sponsor_segments: Sponsor segments; overlapping ones are clipped to the
            earlier segment
        total_duration: Item duration in seconds, if known
        skip_categories: Sponsor categories to mark inactive; None marks all

    Returns:
        Chapters ordered by start where each chapter ends where the next begins
        and the last ends at ``total_duration`` (or has no end when unknown).
        Empty when there are neither native chapters nor sponsor segments.
    """
    limit = total_duration if total_duration is not None else math.inf
    sponsors = _sponsor_chapters(sponsor_segments or [], limit, skip_categories)

    pieces: List[Chapter] = list(sponsors)
    for chapter, start, end in _native_intervals(native_chapters, limit):
        pieces.extend(_subtract(chapter, start, end, sponsors))
    if not pieces:
        return []

    # Sponsors sort ahead of native pieces starting at the same instant
    pieces.sort(key=lambda c: (c.start, c.source is not ChapterSource.SPONSOR))

    merged: List[Chapter] = []
    cursor = 0.0
    for piece in pieces:
        piece_end = piece.end if piece.end is not None else math.inf
        start = max(piece.start, cursor)
        if piece_end <= start:
            continue
        if start > cursor:
            merged.append(_filler(cursor, start))
        merged.append(replace(piece, start=start, end=piece_end))
        cursor = piece_end

    if cursor < limit:
        merged.append(_filler(cursor, limit))

    return [_finalize(chapter) for chapter in merged]


def validate_timeline(chapters: Sequence[Chapter], total_duration: Optional[float] = None) -> None:
    """Check that chapters are strictly ordered and gapless.

    Raises:
        InvalidTimelineError: If a chapter has a non-finite bound, starts
            before 0 or not after its predecessor, an inner chapter does not
            end where the next starts, or the last chapter does not end at
            ``total_duration`` (or has an end although the duration is unknown)
    """
    for index, chapter in enumerate(chapters):
        if not math.isfinite(chapter.start) or (
            chapter.end is not None and not math.isfinite(chapter.end)
        ):
            raise InvalidTimelineError(
                f"Chapter {index} has a non-finite bound: {chapter.start}..{chapter.end}"
            )
        if chapter.start < 0:
            raise InvalidTimelineError(f"Chapter {index} starts before 0: {chapter.start}")
        if index + 1 < len(chapters):
            following = chapters[index + 1]
            if following.start <= chapter.start:
                raise InvalidTimelineError(
                    f"Chapter {index + 1} starts at {following.start}, "
                    f"not after chapter {index} at {chapter.start}"
                )
            if chapter.end is None or abs(chapter.end - following.start) > BOUNDARY_TOLERANCE:
                raise InvalidTimelineError(
                    f"Chapter {index} ends at {chapter.end}, next starts at {following.start}"
                )

    if not chapters:
        return
    last = chapters[-1]
    if total_duration is None:
        if last.end is not None:
            raise InvalidTimelineError("Last chapter has an end although the duration is unknown")
    elif last.end is None or abs(last.end - total_duration) > BOUNDARY_TOLERANCE:
        raise InvalidTimelineError(f"Last chapter ends at {last.end}, expected {total_duration}")


def skip_sponsor_segments(
    chapters: Sequence[Chapter], skip_categories: Optional[Collection[str]]
) -> List[Chapter]:
    """Re-apply skip preferences to the sponsor chapters of a timeline."""
    return [
        (
            replace(chapter, is_active=_is_sponsor_active(chapter.category or "", skip_categories))
            if chapter.source is ChapterSource.SPONSOR
            else chapter
        )
        for chapter in chapters
    ]


class TimelineStore(Protocol):
    """Persistence collaborator for merged timelines.

    ``save`` replaces the stored snapshot for the item as a whole and must reject
    snapshots whose generation is not higher than the stored one.
    """

    def load(self, item_id: str) -> Optional[Timeline]: ...

    def save(self, timeline: Timeline) -> None: ...


class InMemoryTimelineStore:
    """`TimelineStore` keeping immutable snapshots in a dict."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshots: Dict[str, Timeline] = {}

    def load(self, item_id: str) -> Optional[Timeline]:
        return self._snapshots.get(item_id)

    def save(self, timeline: Timeline) -> None:
        """Swap in a snapshot.

        Raises:
            StaleCacheConflict: If the stored generation is not lower
        """
        with self._lock:
            current = self._snapshots.get(timeline.item_id)
            if current is not None and current.generation >= timeline.generation:
                raise StaleCacheConflict(timeline.item_id, timeline.generation, current.generation)
            self._snapshots[timeline.item_id] = timeline


class ChapterMerger:
    """Cached, generation-ordered merging of chapters with sponsor segments.

    At most one recomputation runs per item at a time; callers that queue up
    behind it see the fresh result and get ``None`` back.

    Per-item locks, generations and timestamps are kept for the lifetime of
    the merger, one entry per item seen. A merger is meant to live for one
    pipeline run or one player session.

    Args:
        store: Timeline store; defaults to an in-memory store
        provider: Sponsor-segment provider used when no segments are passed in
        skip_categories: Sponsor categories marked inactive; None marks all
        max_age_seconds: Age after which a cached timeline is stale; None never
            expires on age
        clock: Monotonic clock used for the age check
    """

    def __init__(
        self,
        store: Optional[TimelineStore] = None,
        provider: Optional[SponsorSegmentProvider] = None,
        skip_categories: Optional[Collection[str]] = None,
        max_age_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store: TimelineStore = store if store is not None else InMemoryTimelineStore()
        self.provider = provider
        self.skip_categories = frozenset(skip_categories) if skip_categories is not None else None
        self.max_age_seconds = max_age_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._item_locks: Dict[str, threading.Lock] = {}
        self._issued: Dict[str, int] = {}
        self._invalidated: Dict[str, int] = {}
        self._computed_at: Dict[str, float] = {}

    def _item_lock(self, item_id: str) -> threading.Lock:
        with self._lock:
            lock = self._item_locks.get(item_id)
            if lock is None:
                lock = self._item_locks[item_id] = threading.Lock()
            return lock

    def _latest_generation(self, item_id: str) -> int:
        cached = self.store.load(item_id)
        stored = cached.generation if cached is not None else 0
        return max(stored, self._issued.get(item_id, 0))

    def _next_generation(self, item_id: str) -> int:
        with self._lock:
            generation = self._latest_generation(item_id) + 1
            self._issued[item_id] = generation
            return generation

    def invalidate(self, item_id: str) -> None:
        """Mark the cached timeline stale, e.g. after sponsor data was re-fetched."""
        with self._lock:
            self._invalidated[item_id] = self._latest_generation(item_id) + 1
        logger.debug("Invalidated merged chapters for %s", item_id)

    def is_stale(self, item_id: str, timeline: Optional[Timeline]) -> bool:
        if timeline is None:
            return True
        with self._lock:
            invalidated = self._invalidated.get(item_id, 0)
            computed_at = self._computed_at.get(item_id)
        if timeline.generation < invalidated:
            return True
        if self.max_age_seconds is not None:
            return computed_at is None or self._clock() - computed_at > self.max_age_seconds
        return False

    def cached(self, item_id: str) -> Optional[Timeline]:
        return self.store.load(item_id)

    def _fetch_segments(self, item_id: str) -> List[SponsorSegment]:
        if self.provider is None:
            return []
        segments = self.provider.fetch_segments(item_id)
        if segments is None:
            logger.debug("No sponsor data for %s", item_id)
            return []
        return list(segments)

    def merge_or_refresh(
        self,
        item_id: str,
        native_chapters: Sequence[Chapter],
        sponsor_segments: Optional[Sequence[SponsorSegment]] = None,
        total_duration: Optional[float] = None,
        force_refresh: bool = False,
    ) -> Optional[Timeline]:
        """Return a newly merged timeline, or None when the cached one is current.

        Args:
            item_id: Item (content) identifier, also passed to the provider
            native_chapters: Chapters from the item description
            sponsor_segments: Segments to merge; fetched from the provider when None
            total_duration: Item duration in seconds, if known
            force_refresh: Recompute even if the cached timeline is fresh

        Returns:
            The new Timeline snapshot, or None if no update is needed or a newer
            generation was stored first

        Raises:
            SponsorFetchError: If the provider fails
            InvalidTimelineError: If the merged chapters break the timeline invariant
        """
        with self._item_lock(item_id):
            cached = self.store.load(item_id)
            if not force_refresh and not self.is_stale(item_id, cached):
                logger.debug("Merged chapters for %s are current", item_id)
                return None

            generation = self._next_generation(item_id)
            segments = (
                list(sponsor_segments)
                if sponsor_segments is not None
                else self._fetch_segments(item_id)
            )
            chapters = merge_chapters(
                native_chapters, segments, total_duration, self.skip_categories
            )
            validate_timeline(chapters, total_duration if chapters else None)
            timeline = Timeline(
                item_id=item_id,
                chapters=tuple(chapters),
                total_duration=total_duration,
                generation=generation,
            )
            try:
                self.store.save(timeline)
            except StaleCacheConflict as exc:
                logger.debug("%s", exc)
                return None

            with self._lock:
                self._computed_at[item_id] = self._clock()
            logger.info(
                "Merged %d chapter(s) and %d sponsor segment(s) for %s (generation %d)",
                len(native_chapters),
                len(segments),
                item_id,
                generation,
            )
            return timeline
