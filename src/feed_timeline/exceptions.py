"""Custom exceptions for feed_timeline.

Exception Hierarchy:
    FeedTimelineError (base)
    ├── InvalidTimeCodeError - timestamp text is not m:s or h:m:s
    ├── MalformedDocumentError - document is not parseable as a feed
    ├── MetadataNotFoundError - channel title/link missing in metadata mode
    ├── InvalidTimelineError - merged chapters break the ordered/gapless invariant
    ├── StaleCacheConflict - a lower-generation merge result arrived late
    ├── FeedFetchError - the feed could not be fetched
    └── SponsorFetchError - the sponsor-segment provider failed

InvalidTimeCodeError and StaleCacheConflict are recovered where they are raised
(candidate dropped, result discarded). The others propagate to the caller.
"""

from typing import Optional


class FeedTimelineError(Exception):
    """Base exception for all feed_timeline errors.

    Attributes:
        message: Human-readable error message
        suggestion: Optional suggestion for resolving the error
    """

    def __init__(self, message: str, suggestion: Optional[str] = None) -> None:
        self.message = message
        self.suggestion = suggestion
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.suggestion:
            return f"{self.message} Suggestion: {self.suggestion}"
        return self.message


class InvalidTimeCodeError(FeedTimelineError, ValueError):
    """Raised when a timestamp is not in ``m:s`` or ``h:m:s`` form."""

    def __init__(self, text: str) -> None:
        self.text = text
        super().__init__(f"Invalid time code: {text!r}")


class MalformedDocumentError(FeedTimelineError):
    """Raised when a document cannot be parsed as an RSS or Atom feed."""


class MetadataNotFoundError(FeedTimelineError):
    """Raised when channel metadata required for a subscription is missing.

    Example:
        >>> raise MetadataNotFoundError(
        ...     "Channel link not found",
        ...     suggestion="Pass feed_url so the feed address can be used as link",
        ... )
    """


class InvalidTimelineError(FeedTimelineError):
    """Raised when a timeline violates the ordered/gapless invariant."""


class StaleCacheConflict(FeedTimelineError):
    """Raised when a merge result loses the generation race for its item.

    Attributes:
        item_id: Item whose cache entry was contested
        generation: Generation of the discarded result
        stored_generation: Generation already in the store
    """

    def __init__(self, item_id: str, generation: int, stored_generation: int) -> None:
        self.item_id = item_id
        self.generation = generation
        self.stored_generation = stored_generation
        super().__init__(
            f"Discarding timeline generation {generation} for {item_id}: "
            f"generation {stored_generation} already stored"
        )


class FeedFetchError(FeedTimelineError):
    """Raised when a feed document cannot be fetched.

    An empty response body is not a fetch failure; it parses as zero items.
    """

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"Failed to fetch feed {url}: {reason}")


class SponsorFetchError(FeedTimelineError):
    """Raised when sponsor segments cannot be fetched for a content id."""
