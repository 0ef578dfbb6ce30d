"""Sponsor-segment providers.

A provider maps a content identifier (for YouTube items, the video id) to the
ordered segments viewers have flagged as sponsor reads, self promotion and the
like. `SponsorBlockClient` talks to the public SponsorBlock API.
"""

from __future__ import annotations

import json
import logging
import math
from typing import Any, Iterable, List, Optional, Protocol, Sequence

import requests

from . import config, downloader
from .exceptions import SponsorFetchError
from .models import SponsorSegment

logger = logging.getLogger(__name__)

SKIP_SEGMENTS_PATH = "/api/skipSegments"
SKIPPABLE_ACTION_TYPES = frozenset({"skip"})


class SponsorSegmentProvider(Protocol):
    """Source of sponsor segments for a content identifier."""

    def fetch_segments(self, content_id: str) -> Optional[List[SponsorSegment]]:
        """Return segments ordered by start, or None when there is no data."""
        ...


def parse_segments(payload: Iterable[Any]) -> List[SponsorSegment]:
    """Convert SponsorBlock ``skipSegments`` entries into sorted segments.

    Entries with a malformed or non-finite ``segment`` pair, a non-positive
    length or an action other than "skip" (such as "mute") are ignored.
    """
    segments: List[SponsorSegment] = []
    for entry in payload:
        if not isinstance(entry, dict):
            continue
        action = entry.get("actionType", "skip")
        if action not in SKIPPABLE_ACTION_TYPES:
            continue
        bounds = entry.get("segment")
        try:
            start, end = float(bounds[0]), float(bounds[1])
        except (TypeError, ValueError, IndexError):
            logger.debug("Ignoring malformed sponsor segment: %r", entry)
            continue
        if not (math.isfinite(start) and math.isfinite(end)):
            logger.debug("Ignoring non-finite sponsor segment: %r", entry)
            continue
        if start < 0 or end <= start:
            continue
        segments.append(
            SponsorSegment(start=start, end=end, category=str(entry.get("category", "sponsor")))
        )
    segments.sort(key=lambda segment: (segment.start, segment.end))
    return segments


class SponsorBlockClient:
    """`SponsorSegmentProvider` backed by the SponsorBlock HTTP API."""

    def __init__(
        self,
        api_base: str = config.DEFAULT_SPONSORBLOCK_API_BASE,
        categories: Sequence[str] = config.SPONSORBLOCK_CATEGORIES,
        user_agent: str = config.DEFAULT_USER_AGENT,
        timeout: int = config.DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.api_base = api_base.rstrip("/")
        self.categories = list(categories)
        self.user_agent = user_agent
        self.timeout = timeout

    @classmethod
    def from_config(cls, cfg: config.Config) -> "SponsorBlockClient":
        return cls(
            api_base=cfg.sponsorblock_api_base,
            user_agent=cfg.user_agent,
            timeout=cfg.timeout,
        )

    def fetch_segments(self, content_id: str) -> Optional[List[SponsorSegment]]:
        """Fetch segments for a video id.

        Returns:
            Segments sorted by start, or None when SponsorBlock has no data

        Raises:
            SponsorFetchError: If the request fails or the response is invalid
        """
        url = f"{self.api_base}{SKIP_SEGMENTS_PATH}"
        params = {"videoID": content_id, "categories": json.dumps(self.categories)}
        try:
            payload = downloader.fetch_json(url, self.user_agent, self.timeout, params=params)
        except (requests.RequestException, ValueError) as exc:
            raise SponsorFetchError(
                f"Failed to fetch sponsor segments for {content_id}: {exc}"
            ) from exc

        if payload is None:
            return None
        if not isinstance(payload, list):
            raise SponsorFetchError(
                f"Unexpected sponsor segment payload for {content_id}: {type(payload).__name__}"
            )
        segments = parse_segments(payload)
        logger.debug("Fetched %d sponsor segment(s) for %s", len(segments), content_id)
        return segments
