"""Discovery data models and protocol definitions.

This module contains the dataclasses and protocols shared by the pattern
mining and prompt clustering pipelines:

- Typed session entries yielded by a ``SessionReader``
- Per-session and corpus-wide pattern statistics
- Scoring weights, breakdowns and ranked candidates
- Collected prompts, prompt clusters and cluster candidates
"""

from __future__ import annotations

import math
from collections import Counter
from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, Protocol, TypeAlias

from skillscout.core.result import ScoringWeightsError

BashCategory = Literal[
    "git-workflow",
    "test-command",
    "build-command",
    "package-management",
    "file-operation",
    "search",
    "scripted",
    "other",
]

PatternType = Literal["tool-bigram", "tool-trigram", "bash-pattern"]

WEIGHT_SUM_TOLERANCE = 1e-6


# -----------------------------------------------------------------------------
# Session entries
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ToolUse:
    """A single tool invocation extracted from an assistant message."""

    name: str
    input: dict[str, object] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ExtractedPrompt:
    """A real user prompt extracted from a session log."""

    text: str
    session_id: str
    timestamp: str
    cwd: str = ""


@dataclass(frozen=True, slots=True)
class ToolUsesEntry:
    tools: tuple[ToolUse, ...]


@dataclass(frozen=True, slots=True)
class UserPromptEntry:
    prompt: ExtractedPrompt


@dataclass(frozen=True, slots=True)
class SkippedEntry:
    """An entry the reader recognised but did not parse (or could not parse)."""

    type: str


ParsedEntry: TypeAlias = ToolUsesEntry | UserPromptEntry | SkippedEntry
EntryStream: TypeAlias = AsyncIterable[ParsedEntry] | Iterable[ParsedEntry]


@dataclass(frozen=True, slots=True)
class SessionInfo:
    """Index metadata for one session file, tagged with its project."""

    session_id: str
    full_path: Path
    project_slug: str
    message_count: int = 0
    created: str = ""
    modified: str = ""


class SessionReader(Protocol):
    """Turns a session log file into a stream of typed entries.

    Malformed lines must surface as ``SkippedEntry`` rather than raising.
    """

    def read_session(self, path: Path) -> AsyncIterator[ParsedEntry]: ...


SessionProcessor: TypeAlias = Callable[[SessionInfo, EntryStream], Awaitable[None]]


# -----------------------------------------------------------------------------
# Pattern statistics
# -----------------------------------------------------------------------------


@dataclass
class SessionPatterns:
    """Pattern tallies for a single session (or subagent sub-session)."""

    session_id: str
    project_slug: str
    tool_bigrams: Counter[str] = field(default_factory=Counter)
    tool_trigrams: Counter[str] = field(default_factory=Counter)
    bash_patterns: Counter[str] = field(default_factory=Counter)


@dataclass
class PatternOccurrence:
    """Corpus-wide statistics for one canonical pattern key.

    ``session_count`` and ``project_count`` are derived from the id sets and
    ``total_count`` is kept equal to the sum of ``per_session_counts``.
    """

    total_count: int = 0
    session_ids: set[str] = field(default_factory=set)
    project_slugs: set[str] = field(default_factory=set)
    per_session_counts: dict[str, int] = field(default_factory=dict)

    @property
    def session_count(self) -> int:
        return len(self.session_ids)

    @property
    def project_count(self) -> int:
        return len(self.project_slugs)

    def record(self, session_id: str, project_slug: str, count: int) -> None:
        self.total_count += count
        self.session_ids.add(session_id)
        self.project_slugs.add(project_slug)
        self.per_session_counts[session_id] = self.per_session_counts.get(session_id, 0) + count

    def copy(self) -> PatternOccurrence:
        return PatternOccurrence(
            total_count=self.total_count,
            session_ids=set(self.session_ids),
            project_slugs=set(self.project_slugs),
            per_session_counts=dict(self.per_session_counts),
        )


# -----------------------------------------------------------------------------
# Scoring and ranking
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ScoringWeights:
    """Weights for the four scoring factors. Must be non-negative and sum to 1.0."""

    frequency: float
    cross_project: float
    recency: float
    consistency: float

    def __post_init__(self) -> None:
        values = {
            "frequency": self.frequency,
            "cross_project": self.cross_project,
            "recency": self.recency,
            "consistency": self.consistency,
        }
        negative = {name: value for name, value in values.items() if value < 0}
        if negative:
            raise ScoringWeightsError("Scoring weights must be non-negative", context=negative)
        total = sum(values.values())
        if not math.isclose(total, 1.0, abs_tol=WEIGHT_SUM_TOLERANCE):
            raise ScoringWeightsError(
                "Scoring weights must sum to 1.0", context={"sum": round(total, 6)}
            )


@dataclass(frozen=True, slots=True)
class ScoreBreakdown:
    frequency: float
    cross_project: float
    recency: float
    consistency: float


@dataclass(frozen=True, slots=True)
class ParsedPatternKey:
    """Structured form of an aggregator key such as ``tool:bigram:Read->Edit``."""

    type: PatternType
    raw: str
    tools: tuple[str, ...] | None = None
    category: str | None = None


@dataclass
class PatternEvidence:
    projects: list[str]
    sessions: list[str]
    total_occurrences: int
    example_invocations: list[str]
    last_seen: str
    first_seen: str


@dataclass
class RankedCandidate:
    """A scored, evidence-backed suggestion for a reusable skill."""

    pattern_key: str
    label: str
    type: PatternType
    score: float
    score_breakdown: ScoreBreakdown
    evidence: PatternEvidence
    suggested_name: str
    suggested_description: str


@dataclass(frozen=True, slots=True)
class ExistingSkill:
    """An already-authored skill that candidates are deduplicated against."""

    name: str
    description: str


# -----------------------------------------------------------------------------
# Prompt clustering
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CollectedPrompt:
    text: str
    session_id: str
    timestamp: str
    project_slug: str


@dataclass
class PromptCluster:
    """A group of semantically similar prompts, possibly spanning projects."""

    label: str
    example_prompts: list[str]
    centroid: list[float]
    member_count: int
    project_slugs: list[str]
    timestamps: list[str]
    coherence: float = 0.0


@dataclass
class ClusterResult:
    clusters: list[PromptCluster]
    skipped_projects: list[str]


@dataclass(frozen=True, slots=True)
class ClusterScoreBreakdown:
    size: float
    cross_project: float
    coherence: float
    recency: float


@dataclass
class ClusterEvidence:
    projects: list[str]
    prompt_count: int
    last_seen: str


@dataclass
class ClusterCandidate:
    label: str
    suggested_name: str
    suggested_description: str
    cluster_size: int
    coherence: float
    score: float
    score_breakdown: ClusterScoreBreakdown
    example_prompts: list[str]
    evidence: ClusterEvidence


__all__ = [
    "BashCategory",
    "ClusterCandidate",
    "ClusterEvidence",
    "ClusterResult",
    "ClusterScoreBreakdown",
    "CollectedPrompt",
    "EntryStream",
    "ExistingSkill",
    "ExtractedPrompt",
    "ParsedEntry",
    "ParsedPatternKey",
    "PatternEvidence",
    "PatternOccurrence",
    "PatternType",
    "PromptCluster",
    "RankedCandidate",
    "ScoreBreakdown",
    "ScoringWeights",
    "SessionInfo",
    "SessionPatterns",
    "SessionProcessor",
    "SessionReader",
    "SkippedEntry",
    "ToolUse",
    "ToolUsesEntry",
    "UserPromptEntry",
]
