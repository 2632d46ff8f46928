"""Application configuration management.

Handles loading and validating configuration from multiple sources:
    - TOML/JSON config files
    - Environment variables (SKILLSCOUT_* prefix)
    - Default values

Key components:
    - AppConfig: Main configuration model
    - load_config(): Safe config loading with fallback
    - ConfigLoadResult: Metadata about config source
"""

from __future__ import annotations

import json
import math
import os
import tomllib
from collections.abc import Mapping
from contextlib import nullcontext
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from unittest.mock import patch

from pydantic import BaseModel, Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from skillscout.core.result import ConfigurationError

CONFIG_ENV_VAR = "SKILLSCOUT_CONFIG"

WEIGHT_SUM_TOLERANCE = 1e-6


# -----------------------------------------------------------------------------
# Sub-configuration Models
# -----------------------------------------------------------------------------


class ScoringConfig(BaseModel):
    """Tool-pattern scoring and ranking configuration."""

    frequency_weight: float = Field(default=0.25, ge=0.0, description="Weight of log-frequency.")
    cross_project_weight: float = Field(
        default=0.30, ge=0.0, description="Weight of the fraction of projects using a pattern."
    )
    recency_weight: float = Field(default=0.25, ge=0.0, description="Weight of recency decay.")
    consistency_weight: float = Field(
        default=0.20, ge=0.0, description="Weight of the fraction of sessions using a pattern."
    )
    max_candidates: int = Field(default=20, ge=1, description="Maximum ranked candidates.")
    dedup_threshold: float = Field(
        default=0.5, ge=0.0, le=1.0, description="Keyword Jaccard threshold for deduplication."
    )
    noise_max_project_fraction: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Patterns present in at least this fraction of projects are noise.",
    )
    noise_min_projects: int = Field(
        default=15, ge=1, description="Absolute project count required before noise filtering."
    )

    @model_validator(mode="after")
    def weights_sum_to_one(self) -> ScoringConfig:
        total = (
            self.frequency_weight
            + self.cross_project_weight
            + self.recency_weight
            + self.consistency_weight
        )
        if not math.isclose(total, 1.0, abs_tol=WEIGHT_SUM_TOLERANCE):
            raise ValueError(f"scoring weights must sum to 1.0, got {total:.6f}")
        return self


class ClusteringConfig(BaseModel):
    """Prompt clustering configuration."""

    min_prompts_per_project: int = Field(
        default=10, ge=1, description="Projects with fewer prompts are skipped."
    )
    min_pts: int = Field(default=3, ge=1, description="DBSCAN core-point neighbourhood size.")
    merge_similarity_threshold: float = Field(
        default=0.8,
        ge=-1.0,
        le=1.0,
        description="Centroid cosine similarity required for a cross-project merge.",
    )
    max_clusters: int = Field(default=10, ge=1, description="Maximum clusters returned.")
    batch_size: int = Field(default=64, ge=1, description="Texts per embedding request.")
    max_prompt_words: int = Field(
        default=200, ge=1, description="Prompts are truncated to this many words before embedding."
    )


class EmbeddingConfig(BaseModel):
    """Embedding provider and cache configuration."""

    model_name: str = Field(
        default="all-MiniLM-L6-v2", description="Embedding model; also the cache model version."
    )
    server_url: str | None = Field(
        default=None,
        description="Preferred embedding HTTP endpoint, used before loading local weights.",
    )
    cache_path: Path = Field(
        default_factory=lambda: Path.home()
        / ".skillscout"
        / "discovery"
        / "prompt-embeddings-cache.json",
        description="Location of the prompt embedding cache file.",
    )


class SafetyConfig(BaseModel):
    """Which projects may be scanned and how much content is kept."""

    allow_projects: list[str] | None = Field(
        default=None, description="Only these projects are scanned; None allows all."
    )
    exclude_projects: list[str] = Field(
        default_factory=list, description="Projects never scanned, even if allowed."
    )
    structural_only: bool = Field(
        default=False,
        description="Drop prompt text and tool inputs; only tool names and Bash commands remain.",
    )


@dataclass
class ConfigLoadResult:
    path: Path
    file_loaded: bool
    env_overrides: set[str]
    error: str | None = None


class AppConfig(BaseSettings):
    """Application-wide configuration with nested sub-configs."""

    model_config = SettingsConfigDict(
        env_prefix="SKILLSCOUT_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    clustering: ClusteringConfig = Field(default_factory=ClusteringConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    safety: SafetyConfig = Field(default_factory=SafetyConfig)
    log_level: str = Field(default="INFO", description="Log level for skillscout output.")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[
        PydanticBaseSettingsSource,
        PydanticBaseSettingsSource,
        PydanticBaseSettingsSource,
        PydanticBaseSettingsSource,
    ]:
        # Ensure environment variables override config file entries.
        return (env_settings, init_settings, dotenv_settings, file_secret_settings)


def _resolve_config_path(config_path: Path | None, env_vars: Mapping[str, str]) -> Path:
    candidate = config_path or env_vars.get(CONFIG_ENV_VAR) or (Path.home() / ".skillscout.toml")
    return Path(candidate).expanduser()


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}

    raw = path.read_text(encoding="utf-8")
    suffix = path.suffix.lower()
    parser = json.loads if suffix == ".json" else tomllib.loads

    try:
        data = parser(raw)
    except (json.JSONDecodeError, tomllib.TOMLDecodeError) as exc:
        raise ConfigurationError(
            "Syntax error in config file", context={"path": str(path), "error": str(exc)}
        ) from exc

    if not isinstance(data, dict):
        raise ConfigurationError("Config root must be a mapping", context={"path": str(path)})

    return data


def _detect_env_overrides(env_vars: Mapping[str, str]) -> set[str]:
    """Detect which fields are overridden by environment variables.

    For nested models, detects vars like SKILLSCOUT_CLUSTERING__MIN_PTS.
    """
    prefix = AppConfig.model_config.get("env_prefix", "")
    delimiter = AppConfig.model_config.get("env_nested_delimiter", "__")
    overrides: set[str] = set()

    nested_models: dict[str, type[BaseModel]] = {
        "scoring": ScoringConfig,
        "clustering": ClusteringConfig,
        "embedding": EmbeddingConfig,
        "safety": SafetyConfig,
    }

    for group_name, model_cls in nested_models.items():
        for field in model_cls.model_fields:
            env_key = f"{prefix}{group_name}{delimiter}{field}".upper()
            if env_key in env_vars:
                overrides.add(f"{group_name}.{field}")

    if f"{prefix}LOG_LEVEL" in env_vars:
        overrides.add("log_level")

    return overrides


def load_config(
    config_path: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> tuple[AppConfig, ConfigLoadResult]:
    """
    Load configuration with Safe Mode fallback.
    If the file is invalid, returns default config + error message.
    """
    env_vars: Mapping[str, str] = os.environ if env is None else {**os.environ, **env}
    resolved_path = _resolve_config_path(config_path, env_vars)
    env_overrides = _detect_env_overrides(env_vars)

    error: str | None = None
    file_loaded = False
    file_data: dict[str, Any] = {}

    try:
        file_data = _read_config_file(resolved_path)
        file_loaded = resolved_path.exists()
    except ConfigurationError as exc:
        error = str(exc)

    context_manager = (
        patch.dict(os.environ, env_vars, clear=False) if env is not None else nullcontext()
    )

    try:
        with context_manager:
            config = AppConfig(**file_data)
    except ValidationError as exc:
        error = str(exc)
        config = AppConfig()

    load_result = ConfigLoadResult(
        path=resolved_path,
        file_loaded=file_loaded,
        env_overrides=env_overrides,
        error=error,
    )

    return config, load_result


__all__ = [
    "CONFIG_ENV_VAR",
    "AppConfig",
    "ClusteringConfig",
    "ConfigLoadResult",
    "EmbeddingConfig",
    "SafetyConfig",
    "ScoringConfig",
    "load_config",
]
