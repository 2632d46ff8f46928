"""
Result types and error hierarchy for skillscout.

This module provides:
1. Result[T, E] type for failures that are expected values
2. Domain-specific exception hierarchy

Errors fall into three classes. Contract violations (malformed pattern keys,
weights that do not sum to 1.0) are raised immediately. Data-quality issues
never raise; callers degrade to a safe default. Storage issues are reported
as ``Err`` values and turned into a cold cache by the caller.

Usage:
    from skillscout.core.result import Ok, Err, Result, CacheStorageError

    def read_store(path: Path) -> Result[dict, CacheStorageError]:
        if not path.exists():
            return Err(CacheStorageError("missing", context={"path": str(path)}))
        return Ok(json.loads(path.read_text()))

    match read_store(path):
        case Ok(data):
            ...
        case Err(err):
            logger.debug("cold cache: %s", err)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")
E = TypeVar("E", bound=Exception)


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Represents a successful result containing a value."""

    value: T


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """Represents a failed result containing an error."""

    error: E


# Type alias for Result
Result = Ok[T] | Err[E]


# ---------------------------------------------------------------------------
# Domain-specific error hierarchy
# ---------------------------------------------------------------------------


class SkillScoutError(Exception):
    """Base exception for all skillscout errors.

    All custom exceptions should inherit from this class to enable
    consistent error handling across the codebase.
    """

    def __init__(self, message: str, *, context: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} [{ctx_str}]"
        return self.message


class PatternKeyError(SkillScoutError, ValueError):
    """Raised when a canonical pattern key has an unknown shape.

    Examples:
    - ``tool:quadgram:A->B->C->D``
    - ``bash:`` with no category
    """


class ScoringWeightsError(SkillScoutError, ValueError):
    """Raised when scoring weights are negative or do not sum to 1.0."""


class ConfigurationError(SkillScoutError):
    """Raised for configuration issues.

    Examples:
    - Invalid config values
    - Config file parse errors
    """


class CacheStorageError(SkillScoutError):
    """Raised (or returned) when the embedding cache file cannot be used.

    Examples:
    - Cache file missing or unreadable
    - Content is not valid JSON
    - JSON does not have the expected structure
    """


class CapabilityMissingError(SkillScoutError):
    """Raised when an optional backend is not installed."""


class EmbeddingProviderError(SkillScoutError):
    """Raised when an embedding provider returns an unusable batch.

    Examples:
    - Fewer vectors than input texts
    - Remote server returned no embeddings
    """


__all__ = [
    # Result types
    "Ok",
    "Err",
    "Result",
    # Error hierarchy
    "SkillScoutError",
    "PatternKeyError",
    "ScoringWeightsError",
    "ConfigurationError",
    "CacheStorageError",
    "CapabilityMissingError",
    "EmbeddingProviderError",
]
