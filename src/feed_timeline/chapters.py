"""Chapter extraction from free-text item descriptions.

Descriptions commonly list chapters one per line::

    0:00 Intro
    1:30 - Setting up
    1:02:03 • Wrap-up

Each such line becomes a chapter starting at the time code. End times and
durations are inferred from the following chapter and the item's duration.
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import List, Optional, Sequence

from .exceptions import InvalidTimeCodeError
from .models import Chapter, ChapterSource
from .timecode import parse_timecode

logger = logging.getLogger(__name__)

# <timecode> [separator] <title>; the separator is an optional dash or bullet
CHAPTER_LINE_PATTERN = re.compile(
    r"^[ \t]*(?P<time>\d+(?::\d+)+)[ \t]+(?:[-–—•][ \t]*)?(?P<title>\S.*?)[ \t\r]*$",
    re.MULTILINE,
)


def derive_intervals(
    chapters: Sequence[Chapter], total_duration: Optional[float] = None
) -> List[Chapter]:
    """Fill in end times and durations from consecutive start times.

    Args:
        chapters: Chapters in timeline order
        total_duration: Item duration in seconds, if known

    Returns:
        New chapters where every entry but the last ends where the next one
        starts; the last ends at ``total_duration`` or has no end
    """
    result: List[Chapter] = []
    for index, chapter in enumerate(chapters):
        if index == len(chapters) - 1:
            if total_duration is not None:
                result.append(chapter.with_interval(chapter.start, total_duration))
            else:
                result.append(replace(chapter, end=None, duration=None))
        else:
            result.append(chapter.with_interval(chapter.start, chapters[index + 1].start))
    return result


def extract_chapters(
    description: Optional[str], total_duration: Optional[float] = None
) -> List[Chapter]:
    """Extract a chapter list from an item description.

    Matches are kept in document order. Descriptions are assumed to list
    chapters chronologically and repeated time codes are legitimate, so the
    result is not re-sorted.

    Args:
        description: Free-text description, possibly None
        total_duration: Item duration in seconds, if known

    Returns:
        Chapters with inferred end times, or an empty list when the description
        has no time-coded lines
    """
    if not description:
        return []

    candidates: List[Chapter] = []
    for match in CHAPTER_LINE_PATTERN.finditer(description):
        time_text = match.group("time")
        try:
            start = parse_timecode(time_text)
        except InvalidTimeCodeError:
            logger.debug("Dropping chapter candidate with unparsable time code: %s", time_text)
            continue
        candidates.append(
            Chapter(title=match.group("title"), start=start, source=ChapterSource.NATIVE)
        )

    if candidates:
        logger.debug("Extracted %d chapter(s) from description", len(candidates))
    return derive_intervals(candidates, total_duration)
