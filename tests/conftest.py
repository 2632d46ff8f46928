from __future__ import annotations

import logging
import os
import re
import sys
from collections.abc import Iterator, Sequence
from pathlib import Path
from typing import Any

import pytest

# Detect CI environment (GitHub Actions sets CI=true)
IS_CI = os.environ.get("CI", "").lower() == "true"


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "local_only: marks tests that require local environment (skip in CI)",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip local_only tests when running in CI."""
    if not IS_CI:
        return
    skip_ci = pytest.mark.skip(reason="Skipped in CI (requires local environment)")
    for item in items:
        if "local_only" in item.keywords:
            item.add_marker(skip_ci)


ROOT = Path(__file__).resolve().parent.parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from skillscout.embedding import EmbeddingResult  # noqa: E402


def topic_vector(text: str, position: int = 0) -> list[float]:
    """Deterministic 3-d embedding keyed on the topic words in ``text``.

    Prompts about the same topic land within a tiny cosine distance of each
    other; ``position`` adds a small perturbation so vectors are not identical.
    """
    words = re.findall(r"[a-z]+", text.lower())
    p = position * 0.001
    if any(word.startswith(("auth", "login", "token", "password")) for word in words):
        return [0.9 + p, 0.1 - p / 2, p / 10]
    if any(word.startswith("test") for word in words):
        return [0.1, 0.9 + p, p / 10]
    if any(word.startswith(("deploy", "pipeline")) or word == "ci" for word in words):
        return [p / 10, 0.1, 0.9 + p]
    h = len(text) % 10
    return [0.3 + h * 0.01, 0.3 + h * 0.02, 0.3 + h * 0.03]


class FakeEmbeddingProvider:
    """In-memory provider that records every batch it is asked to embed."""

    def __init__(self, model_version: str = "fake-model-v1") -> None:
        self.model_version = model_version
        self.batches: list[list[str]] = []

    @property
    def total_embedded(self) -> int:
        return sum(len(batch) for batch in self.batches)

    async def embed_batch(self, texts: Sequence[str]) -> list[EmbeddingResult]:
        self.batches.append(list(texts))
        return [
            EmbeddingResult(embedding=topic_vector(text, index), from_cache=False, method="fake")
            for index, text in enumerate(texts)
        ]


@pytest.fixture
def fake_provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def cache_path(tmp_path: Path) -> Path:
    return tmp_path / "discovery" / "prompt-embeddings-cache.json"


@pytest.fixture(autouse=True)
def isolate_config(tmp_path: Path, monkeypatch: Any) -> Path:
    """Point config to a temp path so tests don't touch user state."""
    cfg_path = tmp_path / "config.toml"
    monkeypatch.setenv("SKILLSCOUT_CONFIG", str(cfg_path))
    for key in list(os.environ):
        if key.startswith("SKILLSCOUT_") and key != "SKILLSCOUT_CONFIG":
            monkeypatch.delenv(key, raising=False)
    return cfg_path


@pytest.fixture(autouse=True)
def restore_package_logger() -> Iterator[None]:
    """Undo any setup_logging() call made during a test."""
    logger = logging.getLogger("skillscout")
    saved = (list(logger.handlers), logger.level, logger.propagate)
    yield
    logger.handlers[:] = saved[0]
    logger.setLevel(saved[1])
    logger.propagate = saved[2]
