"""Pluggable progress reporting for feed fetches and pipeline runs.

Library code reports through `progress_context`; front ends (the CLI) register a
concrete factory with `set_progress_factory`. Without one, reporting is a no-op.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, ContextManager, Iterator, Optional, Protocol


class ProgressReporter(Protocol):
    """Minimal interface for progress callbacks."""

    def update(self, advance: int) -> None: ...


ProgressFactory = Callable[[Optional[int], str], ContextManager[ProgressReporter]]


class _NoopProgress:
    def update(self, advance: int) -> None:  # pragma: no cover - trivial
        return None


@contextmanager
def _noop_progress(total: Optional[int], description: str) -> Iterator[ProgressReporter]:
    yield _NoopProgress()


_progress_factory: ProgressFactory = _noop_progress


def set_progress_factory(factory: Optional[ProgressFactory]) -> None:
    """Register a global factory for progress reporters; None restores the no-op."""
    global _progress_factory
    _progress_factory = factory or _noop_progress


@contextmanager
def progress_context(total: Optional[int], description: str) -> Iterator[ProgressReporter]:
    """Yield a reporter from the active factory.

    Args:
        total: Expected number of units (bytes or feeds), None when unknown
        description: Label shown next to the progress display
    """
    with _progress_factory(total, description) as reporter:
        yield reporter


__all__ = [
    "ProgressReporter",
    "ProgressFactory",
    "progress_context",
    "set_progress_factory",
]
