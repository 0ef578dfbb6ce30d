"""Short-form content heuristics based on title and description hashtags."""

from __future__ import annotations

import re
from typing import Optional

from .models import ShortFormResult

SHORTS_TAG_PATTERN = re.compile(r"#shorts", re.IGNORECASE)
# '#' followed by at least two letters
HASHTAG_PATTERN = re.compile(r"#[^\W\d_]{2,}")
MIN_LIKELY_SHORT_HASHTAGS = 2


def classify_short_form(title: str, description: Optional[str] = None) -> ShortFormResult:
    """Classify an item as short-form content.

    An explicit ``#shorts`` tag in the title or description marks the item as
    short. Otherwise a title carrying several hashtags marks it as likely short,
    since short uploads tend to be titled with tags. Both flags are advisory.

    Args:
        title: Item title
        description: Item description, if any

    Returns:
        ShortFormResult with at most one flag set
    """
    if SHORTS_TAG_PATTERN.search(title or ""):
        return ShortFormResult(is_short=True, is_likely_short=False)
    if description and SHORTS_TAG_PATTERN.search(description):
        return ShortFormResult(is_short=True, is_likely_short=False)

    if len(HASHTAG_PATTERN.findall(title or "")) >= MIN_LIKELY_SHORT_HASHTAGS:
        return ShortFormResult(is_short=False, is_likely_short=True)
    return ShortFormResult(is_short=False, is_likely_short=False)
