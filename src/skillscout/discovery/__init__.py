"""Skill discovery: tool-pattern mining and prompt clustering."""

from __future__ import annotations

from skillscout.discovery.aggregator import PatternAggregator
from skillscout.discovery.bash_patterns import (
    classify_bash_command,
    extract_bash_patterns,
    normalize_bash_command,
)
from skillscout.discovery.cluster_scoring import rank_cluster_candidates, score_cluster
from skillscout.discovery.clustering import ClusterOptions, cluster_prompts
from skillscout.discovery.dbscan import DBSCANResult, cosine_distance, dbscan
from skillscout.discovery.embedding_cache import PromptEmbeddingCache
from skillscout.discovery.epsilon import tune_epsilon
from skillscout.discovery.extractor import (
    create_pattern_session_processor,
    extract_ngrams,
    process_session,
)
from skillscout.discovery.models import (
    ClusterCandidate,
    ClusterResult,
    CollectedPrompt,
    ExistingSkill,
    PatternOccurrence,
    PromptCluster,
    RankedCandidate,
    ScoringWeights,
    SessionInfo,
    SessionPatterns,
)
from skillscout.discovery.pipeline import DiscoveryReport, discover_skills
from skillscout.discovery.prompts import PromptCollectorResult, create_prompt_collecting_processor
from skillscout.discovery.ranking import RankingOptions, rank_candidates
from skillscout.discovery.safety import (
    filter_structural_only,
    redact_secrets,
    validate_project_access,
)
from skillscout.discovery.scoring import (
    DEFAULT_SCORING_WEIGHTS,
    generate_candidate_name,
    parse_pattern_key,
    score_pattern,
)

__all__ = [
    "DEFAULT_SCORING_WEIGHTS",
    "ClusterCandidate",
    "ClusterOptions",
    "ClusterResult",
    "CollectedPrompt",
    "DBSCANResult",
    "DiscoveryReport",
    "ExistingSkill",
    "PatternAggregator",
    "PatternOccurrence",
    "PromptCluster",
    "PromptCollectorResult",
    "PromptEmbeddingCache",
    "RankedCandidate",
    "RankingOptions",
    "ScoringWeights",
    "SessionInfo",
    "SessionPatterns",
    "classify_bash_command",
    "cluster_prompts",
    "cosine_distance",
    "create_pattern_session_processor",
    "create_prompt_collecting_processor",
    "dbscan",
    "discover_skills",
    "extract_bash_patterns",
    "extract_ngrams",
    "filter_structural_only",
    "generate_candidate_name",
    "normalize_bash_command",
    "parse_pattern_key",
    "process_session",
    "rank_candidates",
    "rank_cluster_candidates",
    "redact_secrets",
    "score_cluster",
    "score_pattern",
    "tune_epsilon",
    "validate_project_access",
]
