"""Multi-factor pattern scoring.

Scores aggregated pattern occurrences using four factors:

1. **Frequency** - ``log2(total_count + 1) / 10``, capped at 1.0, so a 100x
   jump in raw count is worth roughly 3x, not 100x
2. **Cross-project** - fraction of observed projects using the pattern
3. **Recency** - exponential decay from the most recent contributing session
   with a 14-day half-life; 0 when no session has a timestamp
4. **Consistency** - fraction of observed sessions using the pattern

Also parses aggregator keys back into structured form and derives candidate
names from them.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Final

from skillscout.core.result import PatternKeyError

from .aggregator import BASH_PREFIX, TOOL_BIGRAM_PREFIX, TOOL_TRIGRAM_PREFIX
from .extractor import NGRAM_SEPARATOR
from .models import ParsedPatternKey, PatternOccurrence, ScoreBreakdown, ScoringWeights

DEFAULT_SCORING_WEIGHTS: Final[ScoringWeights] = ScoringWeights(
    frequency=0.25,
    cross_project=0.30,
    recency=0.25,
    consistency=0.20,
)

RECENCY_HALF_LIFE_DAYS: Final[float] = 14.0
FREQUENCY_LOG_SCALE: Final[float] = 10.0
SECONDS_PER_DAY: Final[float] = 24 * 60 * 60


def _clamp_unit(value: float) -> float:
    return max(0.0, min(1.0, value))


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)


# -----------------------------------------------------------------------------
# Key parsing and naming
# -----------------------------------------------------------------------------


def _parse_tools(key: str, raw: str, expected: int) -> tuple[str, ...]:
    tools = tuple(raw.split(NGRAM_SEPARATOR))
    if len(tools) != expected or any(not tool for tool in tools):
        raise PatternKeyError(
            f"Expected {expected} tool names in pattern key",
            context={"key": key},
        )
    return tools


def parse_pattern_key(key: str) -> ParsedPatternKey:
    """Invert an aggregator key into its structured form.

    - ``tool:bigram:Read->Edit`` -> type ``tool-bigram``, tools ``("Read", "Edit")``
    - ``tool:trigram:A->B->C`` -> type ``tool-trigram``, three tools
    - ``bash:git-workflow`` -> type ``bash-pattern``, category ``git-workflow``

    Raises:
        PatternKeyError: for any other shape.
    """
    if key.startswith(TOOL_BIGRAM_PREFIX):
        raw = key[len(TOOL_BIGRAM_PREFIX) :]
        return ParsedPatternKey(type="tool-bigram", raw=raw, tools=_parse_tools(key, raw, 2))

    if key.startswith(TOOL_TRIGRAM_PREFIX):
        raw = key[len(TOOL_TRIGRAM_PREFIX) :]
        return ParsedPatternKey(type="tool-trigram", raw=raw, tools=_parse_tools(key, raw, 3))

    if key.startswith(BASH_PREFIX):
        raw = key[len(BASH_PREFIX) :]
        if not raw or ":" in raw:
            raise PatternKeyError("Malformed bash pattern key", context={"key": key})
        return ParsedPatternKey(type="bash-pattern", raw=raw, category=raw)

    raise PatternKeyError("Unknown pattern key format", context={"key": key})


def generate_candidate_name(parsed: ParsedPatternKey) -> str:
    """Derive a skill name from a parsed key.

    Tool chains become ``read-edit-workflow``; bash categories become
    ``git-workflow-patterns``.
    """
    if parsed.tools is not None:
        return "-".join(tool.lower() for tool in parsed.tools) + "-workflow"
    return f"{parsed.category or parsed.raw}-patterns"


# -----------------------------------------------------------------------------
# Scoring
# -----------------------------------------------------------------------------


def _most_recent(
    session_ids: set[str], session_timestamps: Mapping[str, datetime]
) -> datetime | None:
    latest: datetime | None = None
    for session_id in session_ids:
        ts = session_timestamps.get(session_id)
        if ts is None:
            continue
        ts = _as_utc(ts)
        if latest is None or ts > latest:
            latest = ts
    return latest


def recency_decay(last_seen: datetime | None, now: datetime) -> float:
    """Exponential decay with a 14-day half-life; 0.0 when ``last_seen`` is unknown."""
    if last_seen is None:
        return 0.0
    days_since = (_as_utc(now) - _as_utc(last_seen)).total_seconds() / SECONDS_PER_DAY
    return _clamp_unit(math.exp(-math.log(2) * days_since / RECENCY_HALF_LIFE_DAYS))


def score_pattern(
    occurrence: PatternOccurrence,
    total_projects: int,
    total_sessions: int,
    session_timestamps: Mapping[str, datetime],
    now: datetime,
    weights: ScoringWeights | None = None,
) -> tuple[float, ScoreBreakdown]:
    """Score a pattern occurrence with four weighted factors.

    Args:
        occurrence: Aggregated statistics for the pattern
        total_projects: Unique projects observed in the corpus
        total_sessions: Unique sessions observed in the corpus
        session_timestamps: Session id -> session time, used for recency
        now: Reference time for recency decay
        weights: Optional override of ``DEFAULT_SCORING_WEIGHTS``

    Returns:
        (score in [0, 1], per-factor breakdown)
    """
    weights = weights or DEFAULT_SCORING_WEIGHTS

    frequency = _clamp_unit(math.log2(max(occurrence.total_count, 0) + 1) / FREQUENCY_LOG_SCALE)
    cross_project = (
        _clamp_unit(occurrence.project_count / total_projects) if total_projects > 0 else 0.0
    )
    recency = recency_decay(_most_recent(occurrence.session_ids, session_timestamps), now)
    consistency = (
        _clamp_unit(occurrence.session_count / total_sessions) if total_sessions > 0 else 0.0
    )

    score = (
        weights.frequency * frequency
        + weights.cross_project * cross_project
        + weights.recency * recency
        + weights.consistency * consistency
    )
    breakdown = ScoreBreakdown(
        frequency=frequency,
        cross_project=cross_project,
        recency=recency,
        consistency=consistency,
    )
    return _clamp_unit(score), breakdown


__all__ = [
    "DEFAULT_SCORING_WEIGHTS",
    "RECENCY_HALF_LIFE_DAYS",
    "generate_candidate_name",
    "parse_pattern_key",
    "recency_decay",
    "score_pattern",
]
