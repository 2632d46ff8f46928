"""End-to-end batch discovery.

Runs every session once through the prompt-collecting pattern processor,
then ranks tool-pattern candidates and clusters the collected prompts.
Each call recomputes everything from scratch; only the embedding cache
carries state between runs. Projects outside the configured allow/exclude
lists are never read.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from skillscout.core.config import AppConfig, load_config
from skillscout.core.console import get_logger, setup_logging
from skillscout.embedding import EmbeddingProvider

from .aggregator import PatternAggregator
from .cluster_scoring import rank_cluster_candidates
from .clustering import ClusterOptions, cluster_prompts
from .embedding_cache import PromptEmbeddingCache
from .extractor import create_pattern_session_processor
from .models import (
    ClusterCandidate,
    ClusterResult,
    ExistingSkill,
    RankedCandidate,
    ScoringWeights,
    SessionInfo,
    SessionReader,
)
from .prompts import PromptCollectorResult, create_prompt_collecting_processor
from .ranking import RankingOptions, rank_candidates
from .safety import structural_entries, validate_project_access

logger = get_logger(__name__)


@dataclass
class DiscoveryReport:
    """Everything one discovery run produced."""

    pattern_candidates: list[RankedCandidate] = field(default_factory=list)
    cluster_candidates: list[ClusterCandidate] = field(default_factory=list)
    cluster_result: ClusterResult | None = None
    total_projects: int = 0
    total_sessions: int = 0
    total_prompts: int = 0
    noise_filtered: int = 0
    failed_sessions: list[str] = field(default_factory=list)
    excluded_sessions: list[str] = field(default_factory=list)


def load_discovery_config(config_path: Path | None = None, verbose: bool = False) -> AppConfig:
    """Load config the safe way and set up logging at the configured level."""
    config, meta = load_config(config_path=config_path)
    setup_logging(level=config.log_level, verbose=verbose)
    if meta.error:
        logger.warning("Config at %s unusable, running on defaults: %s", meta.path, meta.error)
    if meta.env_overrides:
        logger.debug("Environment overrides: %s", ", ".join(sorted(meta.env_overrides)))
    return config


def scoring_weights_from_config(config: AppConfig) -> ScoringWeights:
    scoring = config.scoring
    return ScoringWeights(
        frequency=scoring.frequency_weight,
        cross_project=scoring.cross_project_weight,
        recency=scoring.recency_weight,
        consistency=scoring.consistency_weight,
    )


def _session_time(session: SessionInfo) -> datetime | None:
    for raw in (session.modified, session.created):
        if not raw:
            continue
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            continue
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return None


async def discover_skills(
    sessions: Iterable[SessionInfo],
    reader: SessionReader,
    provider: EmbeddingProvider | None = None,
    cache: PromptEmbeddingCache | None = None,
    config: AppConfig | None = None,
    now: datetime | None = None,
    existing_skills: Sequence[ExistingSkill] = (),
) -> DiscoveryReport:
    """Mine pattern and prompt-cluster candidates from ``sessions``.

    Sessions whose log cannot be read are logged, listed in
    ``failed_sessions`` and otherwise ignored. Sessions of projects the
    ``safety`` config does not allow are listed in ``excluded_sessions``
    and never read. Prompt clustering is skipped when no ``provider`` is
    given. Embedding failures propagate.

    Without ``config`` the config file is loaded via
    :func:`load_discovery_config`.
    """
    config = config or load_discovery_config()
    safety = config.safety
    now = now or datetime.now(UTC)

    aggregator = PatternAggregator()
    collected = PromptCollectorResult()
    processor = create_prompt_collecting_processor(
        create_pattern_session_processor(aggregator, reader), collected
    )

    report = DiscoveryReport()
    session_timestamps: dict[str, datetime] = {}
    for session in sessions:
        if not validate_project_access(
            session.project_slug, safety.allow_projects, safety.exclude_projects
        ):
            report.excluded_sessions.append(session.session_id)
            continue
        try:
            entries = reader.read_session(session.full_path)
            if safety.structural_only:
                entries = structural_entries(entries)
            await processor(session, entries)
        except OSError as exc:
            logger.warning("Skipping unreadable session %s: %s", session.full_path, exc)
            report.failed_sessions.append(session.session_id)
            continue
        timestamp = _session_time(session)
        if timestamp is not None:
            session_timestamps[session.session_id] = timestamp

    if report.excluded_sessions:
        logger.info("Excluded %d sessions by project access rules", len(report.excluded_sessions))

    report.total_projects = aggregator.total_projects_tracked
    report.total_sessions = aggregator.total_sessions_tracked
    report.total_prompts = collected.total_prompts
    report.noise_filtered = aggregator.filter_noise(
        report.total_projects,
        min_project_threshold=config.scoring.noise_min_projects,
        max_project_fraction=config.scoring.noise_max_project_fraction,
    )

    report.pattern_candidates = rank_candidates(
        aggregator.get_results(),
        report.total_projects,
        report.total_sessions,
        session_timestamps,
        RankingOptions(
            max_candidates=config.scoring.max_candidates,
            weights=scoring_weights_from_config(config),
            existing_skills=existing_skills,
            dedup_threshold=config.scoring.dedup_threshold,
            now=now,
        ),
    )

    if provider is None:
        logger.info("No embedding provider configured; skipping prompt clustering")
        return report

    if cache is None:
        cache = PromptEmbeddingCache(provider.model_version, config.embedding.cache_path)
        cache.load()

    report.cluster_result = await cluster_prompts(
        collected.prompts, provider, cache, ClusterOptions.from_config(config.clustering)
    )
    report.cluster_candidates = rank_cluster_candidates(
        report.cluster_result.clusters,
        report.total_prompts,
        report.total_projects,
        existing_skills,
        now,
        config.scoring.dedup_threshold,
    )

    logger.info(
        "Discovery finished: %d pattern candidates, %d cluster candidates",
        len(report.pattern_candidates),
        len(report.cluster_candidates),
    )
    return report


__all__ = [
    "DiscoveryReport",
    "discover_skills",
    "load_discovery_config",
    "scoring_weights_from_config",
]
