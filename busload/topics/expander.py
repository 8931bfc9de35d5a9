"""
Wildcard topic expansion.

A topic pattern carries at most one ``*`` marker. Expansion replaces the
marker with ``T<n>`` leaves, so ``TEST.BULK.*`` with count 3 and start 10
becomes ``TEST.BULK.T10``, ``TEST.BULK.T11`` and ``TEST.BULK.T12``.
A count of 0 leaves the pattern untouched and the broker receives the
literal wildcard topic.
"""

import logging
from typing import Iterable, Iterator, List

from ..utils.validation import WILDCARD_MARKER, count_wildcard_markers

logger = logging.getLogger(__name__)


def leaf_topic(pattern: str, leaf: int, wildcard_start: int = 0) -> str:
    """Substitute the wildcard marker with the ``T<start + leaf>`` leaf."""
    return pattern.replace(WILDCARD_MARKER, f"T{wildcard_start + leaf}", 1)


def expand(pattern: str, wildcard_count: int, wildcard_start: int = 0) -> List[str]:
    """
    Expand a topic pattern into its concrete topic list.

    Order follows the leaf index so per-topic failures downstream can be
    reported against the right topic.
    """
    markers = count_wildcard_markers(pattern)
    if markers == 0 or wildcard_count == 0:
        return [pattern]
    
    if markers > 1:
        logger.warning(
            f"Topic pattern '{pattern}' has {markers} wildcard markers, "
            f"only the first is expanded"
        )
    
    return [
        leaf_topic(pattern, i, wildcard_start)
        for i in range(wildcard_count)
    ]


def expand_all(
    patterns: Iterable[str],
    wildcard_count: int,
    wildcard_start: int = 0
) -> List[str]:
    """Expand several patterns, keeping pattern order then leaf order."""
    topics: List[str] = []
    for pattern in patterns:
        topics.extend(expand(pattern, wildcard_count, wildcard_start))
    return topics


class RoundRobinTopics:
    """
    Per-message leaf rotation for a publication topic.

    Each call to ``next()`` yields the next leaf topic, wrapping back to
    ``wildcard_start`` after ``wildcard_count`` leaves. ``reset()`` restarts
    the rotation at the first leaf; the burst pacer calls it at the start of
    every burst. Patterns without a marker, or a count of 0, always yield the
    pattern itself.
    """
    
    def __init__(self, pattern: str, wildcard_count: int, wildcard_start: int = 0):
        self.pattern = pattern
        self._count = wildcard_count
        self._start = wildcard_start
        self._leaf = 0
        self._expands = count_wildcard_markers(pattern) > 0 and wildcard_count > 0
    
    def __iter__(self) -> Iterator[str]:
        return self
    
    def __next__(self) -> str:
        if not self._expands:
            return self.pattern
        topic = leaf_topic(self.pattern, self._leaf, self._start)
        self._leaf += 1
        if self._leaf >= self._count:
            self._leaf = 0
        return topic
    
    def reset(self) -> None:
        self._leaf = 0
