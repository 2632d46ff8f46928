"""Disk-persistent cache for prompt embeddings.

Entries are keyed by a content hash of the exact text that was embedded,
so the same prompt seen in another session or project reuses its vector.
Each entry records the model version it was written with; lookups ignore
entries from other model versions, so upgrading the model invalidates the
whole cache without rewriting it.

File format::

    {
      "version": "1.0",
      "modelVersion": "all-MiniLM-L6-v2",
      "entries": {
        "<16 hex chars>": {"embedding": [...], "modelVersion": "...", "createdAt": "..."}
      }
    }
"""

from __future__ import annotations

import hashlib
import json
import os
import tempfile
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Final

from skillscout.core.console import get_logger
from skillscout.core.result import CacheStorageError, Err, Ok, Result

logger = get_logger(__name__)

CACHE_VERSION: Final[str] = "1.0"
CONTENT_HASH_LENGTH: Final[int] = 16
DEFAULT_CACHE_PATH: Final[Path] = (
    Path.home() / ".skillscout" / "discovery" / "prompt-embeddings-cache.json"
)


def _content_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:CONTENT_HASH_LENGTH]


def _empty_store(model_version: str) -> dict[str, Any]:
    return {"version": CACHE_VERSION, "modelVersion": model_version, "entries": {}}


def _read_store(path: Path) -> Result[dict[str, Any], CacheStorageError]:
    """Read and structurally validate a cache file."""
    if not path.exists():
        return Err(CacheStorageError("Cache file not found", context={"path": str(path)}))

    try:
        raw = path.read_bytes().decode("utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        return Err(
            CacheStorageError(
                "Failed to read cache file", context={"path": str(path), "error": str(exc)}
            )
        )

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        return Err(
            CacheStorageError(
                "Cache file is not valid JSON", context={"path": str(path), "error": str(exc)}
            )
        )

    if (
        not isinstance(data, dict)
        or not isinstance(data.get("version"), str)
        or not isinstance(data.get("modelVersion"), str)
        or not isinstance(data.get("entries"), dict)
    ):
        return Err(
            CacheStorageError("Cache file has unexpected structure", context={"path": str(path)})
        )

    return Ok(data)


def _valid_entry(entry: object) -> bool:
    return (
        isinstance(entry, dict)
        and isinstance(entry.get("embedding"), list)
        and isinstance(entry.get("modelVersion"), str)
    )


class PromptEmbeddingCache:
    """Content-hash keyed embedding store backed by a single JSON file.

    Usage:
        cache = PromptEmbeddingCache("all-MiniLM-L6-v2")
        cache.load()
        vector = cache.get(text)
        if vector is None:
            cache.set(text, embed(text))
        cache.save()

    Only one instance per path should call ``save`` at a time; readers of
    the file always see either the previous or the new complete store.
    """

    def __init__(self, model_version: str, cache_path: Path | None = None) -> None:
        self._model_version = model_version
        self._path = Path(cache_path or DEFAULT_CACHE_PATH).expanduser()
        self._store: dict[str, Any] = _empty_store(model_version)
        self._dirty = False

    @property
    def model_version(self) -> str:
        return self._model_version

    @property
    def path(self) -> Path:
        return self._path

    @property
    def dirty(self) -> bool:
        return self._dirty

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def load(self) -> None:
        """Load the store from disk, starting cold on any failure."""
        match _read_store(self._path):
            case Ok(data):
                self._store = data
            case Err(err):
                logger.debug("Starting with empty embedding cache: %s", err)
                self._store = _empty_store(self._model_version)
        self._dirty = False

    def save(self) -> None:
        """Write pending changes via a sibling temp file and atomic rename.

        A no-op when nothing changed since the last load or save. If writing
        fails the previous file is left untouched and the cache stays dirty.
        """
        if not self._dirty:
            return

        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(
            prefix=".prompt-embedding-cache-", suffix=".json.tmp", dir=self._path.parent
        )
        temp_path = Path(temp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(self._store, fh, ensure_ascii=True)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(temp_path, self._path)
        except BaseException:
            temp_path.unlink(missing_ok=True)
            raise
        self._dirty = False
        logger.debug("Saved %d cached embeddings to %s", self.size, self._path)

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    @property
    def size(self) -> int:
        """Number of stored entries, including those from other model versions."""
        return len(self._store["entries"])

    def get(self, text: str) -> list[float] | None:
        """Return the cached embedding for ``text`` under the current model version."""
        entry = self._store["entries"].get(_content_hash(text))
        if not _valid_entry(entry) or entry["modelVersion"] != self._model_version:
            return None
        return entry["embedding"]

    def has(self, text: str) -> bool:
        return self.get(text) is not None

    def get_all(self) -> dict[str, list[float]]:
        """Return ``{content_hash: embedding}`` for every current-version entry."""
        return {
            key: entry["embedding"]
            for key, entry in self._store["entries"].items()
            if _valid_entry(entry) and entry["modelVersion"] == self._model_version
        }

    # -------------------------------------------------------------------------
    # Storage
    # -------------------------------------------------------------------------

    def set(self, text: str, embedding: Sequence[float]) -> None:
        self._store["entries"][_content_hash(text)] = {
            "embedding": list(embedding),
            "modelVersion": self._model_version,
            "createdAt": datetime.now(UTC).isoformat(),
        }
        self._store["modelVersion"] = self._model_version
        self._dirty = True

    def set_batch(self, items: Iterable[tuple[str, Sequence[float]]]) -> None:
        for text, embedding in items:
            self.set(text, embedding)


__all__ = [
    "CACHE_VERSION",
    "DEFAULT_CACHE_PATH",
    "PromptEmbeddingCache",
]
