"""Playback-position chapter tracking.

`ChapterTimelineTracker` follows a playback clock over a chapter timeline. It only
recomputes its current/next/previous chapters when the clock leaves the current
chapter, and asks the playback host to seek past inactive (sponsor) chapters
through `pending_seek`.

A tracker is driven by one clock and is not thread safe; navigation calls must
be made from the same thread or task as `monitor`.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Sequence, Tuple, Union

from . import config
from .models import Chapter, Timeline, TrackerState
from .timecode import format_timecode

logger = logging.getLogger(__name__)


class ChapterTimelineTracker:
    """Tracks the chapter under the playback position.

    Args:
        previous_chapter_delay: Seconds into a chapter after which "previous"
            restarts the current chapter instead of jumping back
        previous_chapter_grace: Seconds at the start of a chapter during which
            "previous" also restarts it, so a double press right after a jump
            does not skip two chapters
        end_of_media_margin: Distance from the end used as the seek target
            when no active chapter follows an inactive one
        playback_speed: Scales both "previous" thresholds
    """

    def __init__(
        self,
        previous_chapter_delay: float = config.DEFAULT_PREVIOUS_CHAPTER_DELAY_SECONDS,
        previous_chapter_grace: float = config.DEFAULT_PREVIOUS_CHAPTER_GRACE_SECONDS,
        end_of_media_margin: float = config.DEFAULT_END_OF_MEDIA_MARGIN_SECONDS,
        playback_speed: float = 1.0,
    ) -> None:
        self.previous_chapter_delay = previous_chapter_delay
        self.previous_chapter_grace = previous_chapter_grace
        self.end_of_media_margin = end_of_media_margin
        self.playback_speed = playback_speed
        self._chapters: Tuple[Chapter, ...] = ()
        self._total_duration: Optional[float] = None
        self._reset()

    @classmethod
    def from_config(cls, cfg: config.Config, playback_speed: float = 1.0) -> "ChapterTimelineTracker":
        return cls(
            previous_chapter_delay=cfg.previous_chapter_delay_seconds,
            previous_chapter_grace=cfg.previous_chapter_grace_seconds,
            end_of_media_margin=cfg.end_of_media_margin_seconds,
            playback_speed=playback_speed,
        )

    def _reset(self) -> None:
        self._current: Optional[int] = None
        self._next: Optional[int] = None
        self._previous: Optional[int] = None
        self._position: Optional[float] = None
        self._pending_seek: Optional[float] = None
        self._resume_at: Optional[float] = None
        self._needs_recompute = True

    @property
    def state(self) -> TrackerState:
        return TrackerState.TRACKING if self._chapters else TrackerState.NO_TIMELINE

    @property
    def chapters(self) -> Tuple[Chapter, ...]:
        return self._chapters

    @property
    def total_duration(self) -> Optional[float]:
        return self._total_duration

    def _chapter(self, index: Optional[int]) -> Optional[Chapter]:
        return self._chapters[index] if index is not None else None

    @property
    def current(self) -> Optional[Chapter]:
        return self._chapter(self._current)

    @property
    def next(self) -> Optional[Chapter]:
        return self._chapter(self._next)

    @property
    def previous(self) -> Optional[Chapter]:
        return self._chapter(self._previous)

    @property
    def pending_seek(self) -> Optional[float]:
        """Seek target the playback host still has to apply."""
        return self._pending_seek

    @property
    def previous_chapter_disabled(self) -> bool:
        return self._previous is None and self._current is None

    def consume_seek(self) -> Optional[float]:
        """Return the pending seek target and clear it."""
        target, self._pending_seek = self._pending_seek, None
        return target

    def set_timeline(
        self,
        timeline: Union[Timeline, Sequence[Chapter], Iterable[Chapter], None],
        total_duration: Optional[float] = None,
    ) -> None:
        """Replace the tracked timeline and reset all derived state.

        Args:
            timeline: A Timeline or chapters in timeline order; None or empty
                clears the tracker
            total_duration: Item duration; defaults to the Timeline's own
        """
        if isinstance(timeline, Timeline):
            chapters = timeline.chapters
            if total_duration is None:
                total_duration = timeline.total_duration
        else:
            chapters = tuple(timeline or ())
        self._chapters = chapters
        self._total_duration = total_duration
        self._reset()
        logger.debug("Tracking %d chapter(s), state %s", len(chapters), self.state.value)

    def clear(self) -> None:
        self.set_timeline(None)

    def _select(self, index: Optional[int]) -> None:
        self._current = index
        self._next = None
        self._previous = None
        if index is None:
            return
        start = self._chapters[index].start
        for candidate, chapter in enumerate(self._chapters):
            if not chapter.is_active:
                continue
            if chapter.start < start:
                self._previous = candidate
            elif chapter.start > start and self._next is None:
                self._next = candidate

    def _recompute(self, time: float) -> None:
        self._needs_recompute = False
        index = next(
            (i for i, chapter in enumerate(self._chapters) if chapter.contains(time)),
            None,
        )
        self._select(index)
        current = self.current
        if current is None:
            self._resume_at = next(
                (chapter.start for chapter in self._chapters if chapter.start > time), None
            )
            logger.debug("No chapter at %.3fs, monitoring paused until %s", time, self._resume_at)
            return
        self._resume_at = None
        if not current.is_active:
            self._skip_inactive(current)

    def _skip_inactive(self, chapter: Chapter) -> None:
        following = self.next
        if following is not None:
            logger.info(
                "Skipping %r at %s to %r at %s",
                chapter.title,
                format_timecode(chapter.start),
                following.title,
                format_timecode(following.start),
            )
            self._pending_seek = following.start
        elif self._total_duration is not None:
            self._pending_seek = max(0.0, self._total_duration - self.end_of_media_margin)
            logger.info(
                "Skipping %r at %s to the end (%s)",
                chapter.title,
                format_timecode(chapter.start),
                format_timecode(self._pending_seek),
            )
        else:
            logger.debug("Cannot skip %r: no active chapter follows and duration is unknown", chapter.title)

    def monitor(self, time: float) -> bool:
        """Feed a playback clock sample.

        After a sample that falls in no chapter, monitoring pauses until
        playback reaches the start of the next chapter or the host seeks.

        Returns:
            True if the current chapter was recomputed
        """
        if not self._chapters:
            return False
        self._position = time
        if not self._needs_recompute:
            current = self.current
            if current is None:
                if self._resume_at is None or time < self._resume_at:
                    return False
            elif current.contains(time):
                return False
        self._recompute(time)
        return True

    def handle_seek(self, time: float) -> None:
        """Resume tracking at a position the host seeked to."""
        if not self._chapters:
            return
        self._position = time
        self._recompute(time)

    def set_chapter(self, chapter: Chapter) -> None:
        """Jump to the start of ``chapter`` and make it current."""
        self._pending_seek = chapter.start
        self._position = chapter.start
        self._recompute(chapter.start)

    def go_to_next(self) -> bool:
        following = self.next
        if following is None:
            return False
        self.set_chapter(following)
        return True

    def go_to_previous(self) -> bool:
        """Restart the current chapter or jump to the previous active one.

        The current chapter is restarted when playback is at least the delay
        into it, still within the grace period, or there is no previous
        chapter. Both thresholds scale with the playback speed.
        """
        current = self.current
        if current is None:
            logger.debug("go_to_previous: no current chapter")
            return False

        elapsed = (self._position if self._position is not None else current.start) - current.start
        delay = self.previous_chapter_delay * self.playback_speed
        grace = self.previous_chapter_grace * self.playback_speed
        previous = self.previous
        if previous is None or elapsed >= delay or elapsed < grace:
            self.set_chapter(current)
        else:
            self.set_chapter(previous)
        return True

    def ensure_start_position(self, time: float) -> float:
        """Move a resume position out of a leading inactive region.

        Returns ``time`` unchanged when an active chapter starts at or before
        it, otherwise the start of the first active chapter after it.
        """
        if any(chapter.is_active and chapter.start <= time for chapter in self._chapters):
            return time
        following = next(
            (chapter for chapter in self._chapters if chapter.is_active and chapter.start > time),
            None,
        )
        return following.start if following is not None else time
