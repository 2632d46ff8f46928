"""Corpus-wide pattern aggregation.

Merges per-session ``SessionPatterns`` into ``PatternOccurrence`` statistics
keyed by canonical pattern keys:

- ``tool:bigram:A->B``
- ``tool:trigram:A->B->C``
- ``bash:<category>``

Merging only adds counts and set members, so the result does not depend on
the order sessions arrive in.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Final

from skillscout.core.console import get_logger

from .models import PatternOccurrence, SessionPatterns

logger = get_logger(__name__)

TOOL_BIGRAM_PREFIX: Final[str] = "tool:bigram:"
TOOL_TRIGRAM_PREFIX: Final[str] = "tool:trigram:"
BASH_PREFIX: Final[str] = "bash:"

DEFAULT_NOISE_PROJECT_FRACTION: Final[float] = 0.8
DEFAULT_NOISE_MIN_PROJECTS: Final[int] = 15


class PatternAggregator:
    """Accumulates pattern occurrences across sessions and projects.

    Usage:
        aggregator = PatternAggregator()
        for patterns in session_patterns:
            aggregator.add_session_patterns(patterns)
        aggregator.filter_noise(aggregator.total_projects_tracked)
        occurrences = aggregator.get_results()
    """

    def __init__(self) -> None:
        self._patterns: dict[str, PatternOccurrence] = {}
        self._projects: set[str] = set()
        self._sessions: set[str] = set()

    @property
    def total_projects_tracked(self) -> int:
        """Unique projects seen, including sessions that produced no patterns."""
        return len(self._projects)

    @property
    def total_sessions_tracked(self) -> int:
        return len(self._sessions)

    def add_session_patterns(self, patterns: SessionPatterns) -> None:
        """Merge one session's tallies into the corpus statistics."""
        self._projects.add(patterns.project_slug)
        self._sessions.add(patterns.session_id)

        self._merge(TOOL_BIGRAM_PREFIX, patterns.tool_bigrams, patterns)
        self._merge(TOOL_TRIGRAM_PREFIX, patterns.tool_trigrams, patterns)
        self._merge(BASH_PREFIX, patterns.bash_patterns, patterns)

    def _merge(self, prefix: str, counts: Mapping[str, int], patterns: SessionPatterns) -> None:
        for raw, count in counts.items():
            if count <= 0:
                continue
            key = f"{prefix}{raw}"
            occurrence = self._patterns.get(key)
            if occurrence is None:
                occurrence = PatternOccurrence()
                self._patterns[key] = occurrence
            occurrence.record(patterns.session_id, patterns.project_slug, count)

    def filter_noise(
        self,
        total_projects: int,
        min_project_threshold: int = DEFAULT_NOISE_MIN_PROJECTS,
        max_project_fraction: float = DEFAULT_NOISE_PROJECT_FRACTION,
    ) -> int:
        """Remove patterns that show up in nearly every project.

        A pattern is noise when its project count is both at least
        ``max_project_fraction`` of ``total_projects`` and at least
        ``min_project_threshold``. Mutates in place and returns the number
        of patterns removed.
        """
        if total_projects <= 0:
            return 0

        noisy = [
            key
            for key, occurrence in self._patterns.items()
            if occurrence.project_count / total_projects >= max_project_fraction
            and occurrence.project_count >= min_project_threshold
        ]
        for key in noisy:
            del self._patterns[key]

        if noisy:
            logger.debug("Filtered %d ubiquitous patterns as noise", len(noisy))
        return len(noisy)

    def get_results(self) -> dict[str, PatternOccurrence]:
        """Return a deep copy of the accumulated occurrences."""
        return {key: occurrence.copy() for key, occurrence in self._patterns.items()}


__all__ = [
    "BASH_PREFIX",
    "TOOL_BIGRAM_PREFIX",
    "TOOL_TRIGRAM_PREFIX",
    "PatternAggregator",
]
