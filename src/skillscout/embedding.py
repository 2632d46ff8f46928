"""Embedding providers for prompt clustering.

Defines the ``EmbeddingProvider`` protocol the clustering pipeline consumes
and ``SentenceTransformerProvider``, which embeds text with either a remote
embedding server (OpenAI-style ``/embeddings`` payloads) or a local
SentenceTransformer model from the optional ``ai`` extra.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Literal, Protocol
from urllib import error as urllib_error
from urllib import parse as urllib_parse
from urllib import request as urllib_request

from skillscout.core.config import EmbeddingConfig
from skillscout.core.console import get_logger
from skillscout.core.result import CapabilityMissingError, EmbeddingProviderError

if TYPE_CHECKING:
    from sentence_transformers import SentenceTransformer

logger = get_logger(__name__)

EmbeddingMethod = Literal["model", "remote", "cache", "fake"]


@dataclass(frozen=True, slots=True)
class EmbeddingResult:
    embedding: list[float]
    from_cache: bool
    method: EmbeddingMethod


class EmbeddingProvider(Protocol):
    """Turns an ordered batch of texts into an equally ordered list of results."""

    model_version: str

    async def embed_batch(self, texts: Sequence[str]) -> list[EmbeddingResult]: ...


# -----------------------------------------------------------------------------
# Remote server helpers
# -----------------------------------------------------------------------------


def _normalize_server_url(raw: str | None) -> str | None:
    """Normalize a server URL, adding http:// if needed."""
    if not raw:
        return None
    cleaned = raw.strip()
    if not cleaned:
        return None
    if "://" not in cleaned:
        cleaned = f"http://{cleaned}"
    parsed = urllib_parse.urlparse(cleaned)
    if not parsed.netloc and parsed.path:
        parsed = urllib_parse.urlparse(f"http://{parsed.path}")
    return parsed.geturl() if parsed.netloc else None


def _post_json(
    url: str, payload: dict[str, object], timeout: float = 10.0
) -> dict[str, object] | None:
    """POST JSON to a URL and return the decoded response object."""
    data = json.dumps(payload, ensure_ascii=True).encode("utf-8")
    req = urllib_request.Request(url, data=data, headers={"Content-Type": "application/json"})
    try:
        with urllib_request.urlopen(req, timeout=timeout) as resp:
            raw = resp.read()
    except (
        urllib_error.HTTPError,
        urllib_error.URLError,
        TimeoutError,
        OSError,
        ValueError,
    ) as exc:
        logger.debug("Embedding HTTP request failed: %s", exc)
        return None

    try:
        parsed = json.loads(raw.decode("utf-8"))
    except json.JSONDecodeError as exc:
        logger.debug("Embedding HTTP response parse failed: %s", exc)
        return None
    return parsed if isinstance(parsed, dict) else None


def _extract_embeddings(payload: dict[str, object]) -> list[list[float]] | None:
    """Extract embedding vectors from an API response."""
    candidates: list[list[float]] = []
    if "data" in payload and isinstance(payload["data"], list):
        for item in payload["data"]:
            if isinstance(item, dict) and isinstance(item.get("embedding"), list):
                candidates.append([float(val) for val in item["embedding"]])
    if not candidates and "embeddings" in payload and isinstance(payload["embeddings"], list):
        for vector in payload["embeddings"]:
            if isinstance(vector, list):
                candidates.append([float(val) for val in vector])
    return candidates or None


def _load_sentence_transformer(model_name: str) -> SentenceTransformer:
    """Load a SentenceTransformer model into the per-user model cache."""
    try:
        from sentence_transformers import SentenceTransformer as STModel
    except ImportError as exc:
        raise CapabilityMissingError(
            "Local embeddings unavailable. Install with `pip install skillscout[ai]`.",
            context={"model": model_name},
        ) from exc

    cache_root = Path.home() / ".cache" / "skillscout" / "sentence-transformers"
    cache_root.mkdir(parents=True, exist_ok=True)
    return STModel(model_name, cache_folder=str(cache_root))


# -----------------------------------------------------------------------------
# Provider
# -----------------------------------------------------------------------------


class SentenceTransformerProvider:
    """Embedding provider backed by a remote server or a local model.

    The remote server is tried first when configured; if it fails the
    provider falls back to the local model for the rest of its lifetime.
    The local model is loaded lazily on first use.
    """

    def __init__(self, model_name: str, server_url: str | None = None) -> None:
        self.model_name = model_name
        self.model_version = model_name
        self._server_url = _normalize_server_url(server_url)
        self._remote_available = self._server_url is not None
        self._model: SentenceTransformer | None = None

    @classmethod
    def from_config(cls, config: EmbeddingConfig) -> SentenceTransformerProvider:
        return cls(config.model_name, config.server_url)

    def _embed_remote(self, texts: list[str]) -> list[list[float]] | None:
        if not self._server_url or not self._remote_available:
            return None
        payload: dict[str, object] = {"input": texts, "model": self.model_name}
        response = _post_json(self._server_url, payload)
        vectors = _extract_embeddings(response) if response is not None else None
        if vectors is None:
            logger.debug("Embedding server %s unusable; using local model", self._server_url)
            self._remote_available = False
        return vectors

    def _embed_local(self, texts: list[str]) -> list[list[float]]:
        if self._model is None:
            self._model = _load_sentence_transformer(self.model_name)
        vectors = self._model.encode(texts, show_progress_bar=False, convert_to_numpy=True)
        return [vector.tolist() for vector in vectors]

    def _embed_sync(self, texts: list[str]) -> list[EmbeddingResult]:
        remote = self._embed_remote(texts)
        if remote is not None:
            vectors, method = remote, "remote"
        else:
            vectors, method = self._embed_local(texts), "model"

        if len(vectors) != len(texts):
            raise EmbeddingProviderError(
                "Embedding backend returned the wrong number of vectors",
                context={"expected": len(texts), "received": len(vectors), "method": method},
            )
        return [EmbeddingResult(embedding=v, from_cache=False, method=method) for v in vectors]

    async def embed_batch(self, texts: Sequence[str]) -> list[EmbeddingResult]:
        if not texts:
            return []
        return await asyncio.to_thread(self._embed_sync, list(texts))


__all__ = [
    "EmbeddingMethod",
    "EmbeddingProvider",
    "EmbeddingResult",
    "SentenceTransformerProvider",
]
