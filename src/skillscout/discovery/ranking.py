"""Candidate ranking with evidence assembly and deduplication.

Transforms aggregated ``PatternOccurrence`` data into scored, evidence-rich
``RankedCandidate`` objects, then drops candidates that duplicate an
existing skill by exact name or keyword overlap.

Pipeline: score -> evidence -> name/label/description -> sort -> dedup -> cap
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Final

from .models import (
    ExistingSkill,
    ParsedPatternKey,
    PatternEvidence,
    PatternOccurrence,
    RankedCandidate,
    ScoringWeights,
)
from .scoring import (
    DEFAULT_SCORING_WEIGHTS,
    generate_candidate_name,
    parse_pattern_key,
    score_pattern,
)
from .text_utils import extract_keywords, jaccard_similarity

MAX_EVIDENCE_SESSIONS: Final[int] = 10
MAX_EXAMPLE_INVOCATIONS: Final[int] = 3
DEFAULT_MAX_CANDIDATES: Final[int] = 20
DEFAULT_DEDUP_THRESHOLD: Final[float] = 0.5

_TOOL_VERBS: Final[dict[str, str]] = {
    "read": "reading and analyzing",
    "edit": "editing and modifying",
    "write": "editing and modifying",
    "bash": "executing commands on",
    "glob": "searching",
    "grep": "searching",
}
_FALLBACK_VERB: Final[str] = "performing development operations on"


@dataclass
class RankingOptions:
    max_candidates: int = DEFAULT_MAX_CANDIDATES
    weights: ScoringWeights = DEFAULT_SCORING_WEIGHTS
    existing_skills: Sequence[ExistingSkill] = field(default_factory=tuple)
    dedup_threshold: float = DEFAULT_DEDUP_THRESHOLD
    now: datetime | None = None


def _iso(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC).isoformat(timespec="seconds")


def _utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)


def _example_invocations(parsed: ParsedPatternKey) -> list[str]:
    if parsed.tools is not None:
        return [" -> ".join(parsed.tools)]
    return [parsed.raw]


def assemble_evidence(
    pattern_key: str,
    occurrence: PatternOccurrence,
    session_timestamps: Mapping[str, datetime],
) -> PatternEvidence:
    """Collect the evidence bundle shown alongside a candidate.

    - projects: sorted alphabetically
    - sessions: most recent first (untimed sessions last), capped at 10
    - example_invocations: ``A -> B`` for tool chains, the category for bash
    - first/last seen: ISO-8601, or ``""`` when no session has a timestamp
    """
    timed = {
        session_id: _utc(session_timestamps[session_id])
        for session_id in occurrence.session_ids
        if session_id in session_timestamps
    }
    ordered_sessions = sorted(
        occurrence.session_ids,
        key=lambda sid: (sid in timed, timed.get(sid, datetime.min.replace(tzinfo=UTC)), sid),
        reverse=True,
    )

    last_seen = _iso(max(timed.values())) if timed else ""
    first_seen = _iso(min(timed.values())) if timed else ""

    return PatternEvidence(
        projects=sorted(occurrence.project_slugs),
        sessions=ordered_sessions[:MAX_EVIDENCE_SESSIONS],
        total_occurrences=occurrence.total_count,
        example_invocations=_example_invocations(parse_pattern_key(pattern_key))[
            :MAX_EXAMPLE_INVOCATIONS
        ],
        last_seen=last_seen,
        first_seen=first_seen,
    )


def generate_label(parsed: ParsedPatternKey) -> str:
    """Human-readable label: ``Read -> Edit workflow`` or ``Git-workflow commands``."""
    if parsed.tools is not None:
        return " -> ".join(parsed.tools) + " workflow"
    category = parsed.category or parsed.raw
    return category[:1].upper() + category[1:] + " commands"


def _collect_verbs(tools: Sequence[str]) -> list[str]:
    verbs: list[str] = []
    for tool in tools:
        verb = _TOOL_VERBS.get(tool.lower())
        if verb and verb not in verbs:
            verbs.append(verb)
    return verbs or [_FALLBACK_VERB]


def generate_description(parsed: ParsedPatternKey) -> str:
    """Activation-oriented description; always contains a ``Use when`` clause."""
    if parsed.tools is not None:
        verb_phrase = " and ".join(_collect_verbs(parsed.tools))
        return f"Guides {' -> '.join(parsed.tools)} workflow. Use when {verb_phrase} files."
    category = parsed.category or parsed.raw
    return f"Guides {category} operations. Use when running {category} commands."


def match_existing_skill(
    name: str, description: str, existing_skills: Sequence[ExistingSkill], threshold: float
) -> str | None:
    """Return the name of the first existing skill that ``name``/``description`` duplicates."""
    keywords = extract_keywords(description)
    for existing in existing_skills:
        if name.lower() == existing.name.lower():
            return existing.name
        if jaccard_similarity(keywords, extract_keywords(existing.description)) >= threshold:
            return existing.name
    return None


def deduplicate_against_existing(
    candidates: Sequence[RankedCandidate],
    existing_skills: Sequence[ExistingSkill],
    threshold: float = DEFAULT_DEDUP_THRESHOLD,
) -> tuple[list[RankedCandidate], list[tuple[RankedCandidate, str]]]:
    """Split candidates into (kept, removed-with-matched-skill-name).

    A candidate is removed on a case-insensitive name match or when its
    description keywords overlap an existing skill's at or above
    ``threshold``. If every candidate would be removed, all are kept.
    """
    if not existing_skills:
        return list(candidates), []

    kept: list[RankedCandidate] = []
    removed: list[tuple[RankedCandidate, str]] = []
    for candidate in candidates:
        matched = match_existing_skill(
            candidate.suggested_name, candidate.suggested_description, existing_skills, threshold
        )
        if matched is None:
            kept.append(candidate)
        else:
            removed.append((candidate, matched))

    if not kept and removed:
        return list(candidates), []
    return kept, removed


def rank_candidates(
    patterns: Mapping[str, PatternOccurrence],
    total_projects: int,
    total_sessions: int,
    session_timestamps: Mapping[str, datetime],
    options: RankingOptions | None = None,
) -> list[RankedCandidate]:
    """Score, describe, sort, deduplicate and cap pattern candidates.

    Raises:
        PatternKeyError: if ``patterns`` contains a key the aggregator
            could not have produced.
    """
    options = options or RankingOptions()
    now = options.now or datetime.now(UTC)

    candidates: list[RankedCandidate] = []
    for pattern_key, occurrence in patterns.items():
        parsed = parse_pattern_key(pattern_key)
        score, breakdown = score_pattern(
            occurrence,
            total_projects,
            total_sessions,
            session_timestamps,
            now,
            options.weights,
        )
        candidates.append(
            RankedCandidate(
                pattern_key=pattern_key,
                label=generate_label(parsed),
                type=parsed.type,
                score=score,
                score_breakdown=breakdown,
                evidence=assemble_evidence(pattern_key, occurrence, session_timestamps),
                suggested_name=generate_candidate_name(parsed),
                suggested_description=generate_description(parsed),
            )
        )

    # Key as tie-break keeps output stable across dict orderings.
    candidates.sort(key=lambda c: (-c.score, c.pattern_key))

    if options.existing_skills:
        candidates, _removed = deduplicate_against_existing(
            candidates, options.existing_skills, options.dedup_threshold
        )

    return candidates[: options.max_candidates]


__all__ = [
    "DEFAULT_DEDUP_THRESHOLD",
    "DEFAULT_MAX_CANDIDATES",
    "RankingOptions",
    "assemble_evidence",
    "deduplicate_against_existing",
    "generate_description",
    "generate_label",
    "match_existing_skill",
    "rank_candidates",
]
