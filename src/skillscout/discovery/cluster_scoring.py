"""Cluster candidate scoring and ranking.

Scores prompt clusters with four factors, separate from tool-pattern
scoring:

1. **Size** - ``log2(size + 1) / log2(total_prompts + 1)``, capped at 1.0
2. **Cross-project** - fraction of observed projects the cluster spans
3. **Coherence** - mean similarity of members to the centroid
4. **Recency** - 14-day half-life decay from the newest prompt
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Final

from skillscout.core.console import get_logger

from .models import (
    ClusterCandidate,
    ClusterEvidence,
    ClusterScoreBreakdown,
    ExistingSkill,
    PromptCluster,
)
from .ranking import DEFAULT_DEDUP_THRESHOLD, match_existing_skill
from .scoring import recency_decay
from .text_utils import extract_keywords

logger = get_logger(__name__)

SIZE_WEIGHT: Final[float] = 0.20
CROSS_PROJECT_WEIGHT: Final[float] = 0.30
COHERENCE_WEIGHT: Final[float] = 0.30
RECENCY_WEIGHT: Final[float] = 0.20

MAX_SLUG_WORDS: Final[int] = 5
MAX_DESCRIPTION_LABEL: Final[int] = 100


def _clamp_unit(value: float) -> float:
    return max(0.0, min(1.0, value))


def _parse_timestamp(raw: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(raw)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def most_recent_timestamp(timestamps: Sequence[str]) -> datetime | None:
    """Newest parseable ISO-8601 timestamp, ignoring malformed values."""
    parsed = [ts for ts in (_parse_timestamp(raw) for raw in timestamps) if ts is not None]
    return max(parsed) if parsed else None


def score_cluster(
    cluster_size: int,
    total_prompts: int,
    project_count: int,
    total_projects: int,
    coherence: float,
    last_seen: datetime | None,
    now: datetime,
) -> tuple[float, ClusterScoreBreakdown]:
    """Score one cluster; every factor and the total stay in [0, 1]."""
    size = (
        _clamp_unit(math.log2(cluster_size + 1) / math.log2(total_prompts + 1))
        if total_prompts > 0
        else 0.0
    )
    cross_project = _clamp_unit(project_count / total_projects) if total_projects > 0 else 0.0
    coherence = _clamp_unit(coherence)
    recency = recency_decay(last_seen, now)

    score = (
        SIZE_WEIGHT * size
        + CROSS_PROJECT_WEIGHT * cross_project
        + COHERENCE_WEIGHT * coherence
        + RECENCY_WEIGHT * recency
    )
    breakdown = ClusterScoreBreakdown(
        size=size, cross_project=cross_project, coherence=coherence, recency=recency
    )
    return _clamp_unit(score), breakdown


def generate_cluster_name(label: str) -> str:
    """Kebab-case slug of the first five significant words of ``label``."""
    return "-".join(extract_keywords(label)[:MAX_SLUG_WORDS])


def generate_cluster_description(label: str) -> str:
    return f"Guides workflow when: {label[:MAX_DESCRIPTION_LABEL]}"


def rank_cluster_candidates(
    clusters: Sequence[PromptCluster],
    total_prompts: int,
    total_projects: int,
    existing_skills: Sequence[ExistingSkill] = (),
    now: datetime | None = None,
    dedup_threshold: float = DEFAULT_DEDUP_THRESHOLD,
) -> list[ClusterCandidate]:
    """Score, name, sort and deduplicate clusters.

    Deduplication follows the tool-pattern rules: a case-insensitive name
    match or keyword overlap at or above ``dedup_threshold`` removes a
    candidate, unless that would remove every candidate.
    """
    now = now or datetime.now(UTC)
    candidates: list[ClusterCandidate] = []

    for cluster in clusters:
        last_seen = most_recent_timestamp(cluster.timestamps)
        score, breakdown = score_cluster(
            cluster.member_count,
            total_prompts,
            len(cluster.project_slugs),
            total_projects,
            cluster.coherence,
            last_seen,
            now,
        )
        candidates.append(
            ClusterCandidate(
                label=cluster.label,
                suggested_name=generate_cluster_name(cluster.label),
                suggested_description=generate_cluster_description(cluster.label),
                cluster_size=cluster.member_count,
                coherence=breakdown.coherence,
                score=score,
                score_breakdown=breakdown,
                example_prompts=list(cluster.example_prompts),
                evidence=ClusterEvidence(
                    projects=sorted(cluster.project_slugs),
                    prompt_count=cluster.member_count,
                    last_seen=last_seen.isoformat(timespec="seconds") if last_seen else "",
                ),
            )
        )

    candidates.sort(key=lambda c: c.score, reverse=True)

    if not existing_skills:
        return candidates

    kept = [
        c
        for c in candidates
        if match_existing_skill(
            c.suggested_name, c.suggested_description, existing_skills, dedup_threshold
        )
        is None
    ]
    if not kept:
        logger.debug(
            "All %d cluster candidates match existing skills; keeping all", len(candidates)
        )
        return candidates
    return kept


__all__ = [
    "generate_cluster_description",
    "generate_cluster_name",
    "most_recent_timestamp",
    "rank_cluster_candidates",
    "score_cluster",
]
