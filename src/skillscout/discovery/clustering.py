"""Prompt clustering orchestrator.

Pipeline:

1. Per project: skip if below the prompt threshold, truncate prompts,
   embed (reusing cached vectors), auto-tune epsilon, run DBSCAN and build
   labelled clusters
2. Across projects: repeatedly merge the most similar pair of clusters that
   do not both come from one and the same project and whose centroid
   cosine similarity meets the merge threshold
3. Sort by member count, cap, and flush the embedding cache

Embedding batches are awaited one after another, and each batch's vectors
are written to the cache before the next batch is requested.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Final

import numpy as np

from skillscout.core.config import ClusteringConfig
from skillscout.core.console import get_logger
from skillscout.core.result import EmbeddingProviderError
from skillscout.embedding import EmbeddingProvider

from .dbscan import cosine_distance_matrix, cosine_similarity, dbscan
from .embedding_cache import PromptEmbeddingCache
from .epsilon import tune_epsilon
from .models import ClusterResult, CollectedPrompt, PromptCluster

logger = get_logger(__name__)

MAX_LABEL_LENGTH: Final[int] = 100
MAX_EXAMPLE_PROMPTS: Final[int] = 3


@dataclass
class ClusterOptions:
    min_prompts_per_project: int = 10
    min_pts: int = 3
    merge_similarity_threshold: float = 0.8
    max_clusters: int = 10
    batch_size: int = 64
    max_prompt_words: int = 200

    @classmethod
    def from_config(cls, config: ClusteringConfig) -> ClusterOptions:
        return cls(**config.model_dump())


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------


def truncate_to_words(text: str, max_words: int) -> str:
    """Keep the first ``max_words`` whitespace-separated words of ``text``."""
    words = text.split()
    if len(words) <= max_words:
        return text
    return " ".join(words[:max_words])


def compute_centroid(vectors: Sequence[Sequence[float]]) -> list[float]:
    """Element-wise mean of ``vectors``; ``[]`` for no vectors."""
    if len(vectors) == 0:
        return []
    return np.asarray(vectors, dtype=np.float64).mean(axis=0).tolist()


async def _get_embeddings(
    texts: Sequence[str],
    provider: EmbeddingProvider,
    cache: PromptEmbeddingCache,
    batch_size: int,
) -> list[list[float]]:
    vectors: dict[int, list[float]] = {}
    missing: list[int] = []
    for index, text in enumerate(texts):
        cached = cache.get(text)
        if cached is None:
            missing.append(index)
        else:
            vectors[index] = cached

    if missing:
        logger.debug("Embedding %d uncached prompts (%d cached)", len(missing), len(vectors))
    for start in range(0, len(missing), batch_size):
        batch_indices = missing[start : start + batch_size]
        batch_texts = [texts[index] for index in batch_indices]
        results = await provider.embed_batch(batch_texts)
        if len(results) != len(batch_texts):
            raise EmbeddingProviderError(
                "Embedding provider returned the wrong number of results",
                context={"expected": len(batch_texts), "received": len(results)},
            )
        for index, result in zip(batch_indices, results, strict=True):
            vectors[index] = list(result.embedding)
            cache.set(texts[index], vectors[index])

    return [vectors[index] for index in range(len(texts))]


def _build_cluster(
    indices: Sequence[int],
    embeddings: Sequence[Sequence[float]],
    prompts: Sequence[CollectedPrompt],
    texts: Sequence[str],
    project_slug: str,
) -> PromptCluster:
    members = [embeddings[i] for i in indices]
    centroid = compute_centroid(members)
    # Row 0 of the matrix holds each member's distance to the centroid.
    to_centroid = cosine_distance_matrix([centroid, *members])[0, 1:]
    by_distance = sorted(zip(to_centroid.tolist(), indices, strict=True), key=lambda pair: pair[0])
    mean_distance = float(to_centroid.mean())

    return PromptCluster(
        label=texts[by_distance[0][1]][:MAX_LABEL_LENGTH],
        example_prompts=[texts[i] for _, i in by_distance[:MAX_EXAMPLE_PROMPTS]],
        centroid=centroid,
        member_count=len(indices),
        project_slugs=[project_slug],
        timestamps=[prompts[i].timestamp for i in indices],
        coherence=max(0.0, 1.0 - mean_distance),
    )


def _merge_pair(a: PromptCluster, b: PromptCluster) -> PromptCluster:
    larger, smaller = (a, b) if a.member_count >= b.member_count else (b, a)
    total = a.member_count + b.member_count
    centroid = (
        np.asarray(a.centroid) * a.member_count + np.asarray(b.centroid) * b.member_count
    ) / total
    examples = list(larger.example_prompts)
    for prompt in smaller.example_prompts:
        if len(examples) >= MAX_EXAMPLE_PROMPTS:
            break
        if prompt not in examples:
            examples.append(prompt)

    return PromptCluster(
        label=larger.label,
        example_prompts=examples,
        centroid=centroid.tolist(),
        member_count=total,
        project_slugs=sorted(set(a.project_slugs) | set(b.project_slugs)),
        timestamps=[*a.timestamps, *b.timestamps],
        coherence=(a.coherence * a.member_count + b.coherence * b.member_count) / total,
    )


def merge_cross_project(clusters: Sequence[PromptCluster], threshold: float) -> list[PromptCluster]:
    """Greedily merge the most similar cross-project pair until none qualifies.

    Two clusters are eligible when their centroid cosine similarity is at
    least ``threshold`` and they do not both come from one and the same
    project: DBSCAN already decided those differ. A cluster that has
    absorbed another project may still take in more clusters from either.
    """
    working = list(clusters)
    while True:
        best: tuple[float, int, int] | None = None
        for i in range(len(working)):
            for j in range(i + 1, len(working)):
                if len(set(working[i].project_slugs) | set(working[j].project_slugs)) < 2:
                    continue
                similarity = cosine_similarity(working[i].centroid, working[j].centroid)
                if similarity >= threshold and (best is None or similarity > best[0]):
                    best = (similarity, i, j)
        if best is None:
            return working

        _, i, j = best
        working[i] = _merge_pair(working[i], working[j])
        del working[j]


# -----------------------------------------------------------------------------
# Orchestration
# -----------------------------------------------------------------------------


async def cluster_prompts(
    prompts_by_project: Mapping[str, Sequence[CollectedPrompt]],
    provider: EmbeddingProvider,
    cache: PromptEmbeddingCache,
    options: ClusterOptions | None = None,
) -> ClusterResult:
    """Cluster prompts per project, merge across projects, rank and cap.

    Raises:
        EmbeddingProviderError: if the provider returns an unusable batch.
            Vectors from earlier batches stay in the in-memory cache but
            the cache is not saved.
    """
    options = options or ClusterOptions()
    skipped: list[str] = []
    clusters: list[PromptCluster] = []

    for project_slug, prompts in prompts_by_project.items():
        if len(prompts) < options.min_prompts_per_project:
            skipped.append(project_slug)
            continue

        texts = [truncate_to_words(p.text, options.max_prompt_words) for p in prompts]
        embeddings = await _get_embeddings(texts, provider, cache, options.batch_size)

        distances = cosine_distance_matrix(embeddings)
        epsilon = tune_epsilon(embeddings, options.min_pts, distances=distances)
        result = dbscan(embeddings, epsilon, options.min_pts, distances=distances)
        logger.debug(
            "Project %s: %d prompts, epsilon=%.3f, %d clusters, %d noise",
            project_slug,
            len(prompts),
            epsilon,
            len(result.clusters),
            len(result.noise),
        )
        clusters.extend(
            _build_cluster(indices, embeddings, prompts, texts, project_slug)
            for indices in result.clusters
        )

    if skipped:
        logger.info("Skipped %d projects with too few prompts", len(skipped))

    merged = merge_cross_project(clusters, options.merge_similarity_threshold)
    merged.sort(key=lambda cluster: cluster.member_count, reverse=True)

    cache.save()
    return ClusterResult(clusters=merged[: options.max_clusters], skipped_projects=skipped)


__all__ = [
    "ClusterOptions",
    "cluster_prompts",
    "compute_centroid",
    "merge_cross_project",
    "truncate_to_words",
]
