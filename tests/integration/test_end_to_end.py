"""End-to-end tests for skill discovery.

These tests exercise the full discovery stack with only the embedding
model replaced by a deterministic fake:

- Session replay through the prompt collector and pattern processor
- Subagent logs attributed to their parent project
- Per-project clustering with the on-disk embedding cache
- Cross-project cluster merging and candidate ranking
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from datetime import UTC, datetime
from pathlib import Path

import pytest

from skillscout.discovery import (
    PromptEmbeddingCache,
    SessionInfo,
    cluster_prompts,
    discover_skills,
    generate_candidate_name,
    parse_pattern_key,
)
from skillscout.discovery.models import (
    CollectedPrompt,
    ExtractedPrompt,
    ParsedEntry,
    ToolUse,
    ToolUsesEntry,
    UserPromptEntry,
)

NOW = datetime(2026, 3, 1, tzinfo=UTC)

AUTH_TASKS = [
    "Fix the auth redirect after the session expires",
    "Add login throttling for repeated failures",
    "Refresh the auth token in the background",
    "Move password reset emails to the queue",
    "Handle auth errors from the identity provider",
    "Show a friendly message when login is locked",
    "Rotate the auth signing secret safely",
    "Expire the refresh token after thirty days",
    "Log auth failures with the request id",
    "Require password confirmation for email changes",
    "Check auth scopes on the billing routes",
    "Add login audit events for admins",
    "Store auth state in an encrypted cookie",
    "Invalidate token caches on logout",
    "Document the password policy for support",
]


def auth_prompts(project: str) -> list[CollectedPrompt]:
    return [
        CollectedPrompt(
            text=text,
            session_id=f"{project}-{index}",
            timestamp=f"2026-02-{index + 1:02d}T12:00:00Z",
            project_slug=project,
        )
        for index, text in enumerate(AUTH_TASKS)
    ]


def user(text: str, timestamp: str) -> UserPromptEntry:
    return UserPromptEntry(prompt=ExtractedPrompt(text=text, session_id="", timestamp=timestamp))


def tools(*names: str) -> ToolUsesEntry:
    return ToolUsesEntry(tools=tuple(ToolUse(name=name) for name in names))


def bash(command: str) -> ToolUsesEntry:
    return ToolUsesEntry(tools=(ToolUse(name="Bash", input={"command": command}),))


class DirectoryReader:
    """Serves canned entries keyed by file name, like a parsed log directory."""

    def __init__(self, files: dict[str, list[ParsedEntry]]) -> None:
        self.files = files

    async def read_session(self, path: Path) -> AsyncIterator[ParsedEntry]:
        for entry in self.files.get(path.name, []):
            yield entry


class TestClusterAcrossProjects:
    @pytest.mark.asyncio
    async def test_same_topic_in_two_projects_merges(
        self, fake_provider, cache_path: Path
    ) -> None:
        cache = PromptEmbeddingCache(fake_provider.model_version, cache_path)
        result = await cluster_prompts(
            {"project-a": auth_prompts("project-a"), "project-b": auth_prompts("project-b")},
            fake_provider,
            cache,
        )

        assert result.skipped_projects == []
        (cluster,) = result.clusters
        assert cluster.project_slugs == ["project-a", "project-b"]
        assert cluster.member_count == 30
        # project-b reuses project-a's vectors for identical texts.
        assert fake_provider.total_embedded == 15

    @pytest.mark.asyncio
    async def test_small_project_skipped(self, fake_provider, cache_path: Path) -> None:
        cache = PromptEmbeddingCache(fake_provider.model_version, cache_path)
        result = await cluster_prompts(
            {"project-x": auth_prompts("project-x")[:9]}, fake_provider, cache
        )
        assert result.skipped_projects == ["project-x"]
        assert result.clusters == []
        assert fake_provider.batches == []


class TestPatternNaming:
    def test_bigram_key_to_name(self) -> None:
        parsed = parse_pattern_key("tool:bigram:Read->Edit")
        assert parsed.tools == ("Read", "Edit")
        assert generate_candidate_name(parsed) == "read-edit-workflow"


class TestDiscoverSkills:
    @staticmethod
    def _corpus(tmp_path: Path) -> tuple[list[SessionInfo], DirectoryReader]:
        files: dict[str, list[ParsedEntry]] = {}
        sessions: list[SessionInfo] = []
        for project in ("shop-api", "admin-ui"):
            for day in range(1, 6):
                session_id = f"{project}-{day}"
                entries: list[ParsedEntry] = []
                for offset, text in enumerate(AUTH_TASKS[(day - 1) * 3 : day * 3]):
                    entries.append(user(text, f"2026-02-{20 + day:02d}T0{offset}:00:00Z"))
                    entries.append(tools("Grep", "Read", "Edit"))
                entries.append(bash("git status"))
                entries.append(bash("pytest -x tests/"))
                files[f"{session_id}.jsonl"] = entries
                sessions.append(
                    SessionInfo(
                        session_id=session_id,
                        full_path=tmp_path / project / f"{session_id}.jsonl",
                        project_slug=project,
                        modified=f"2026-02-{20 + day:02d}T18:00:00+00:00",
                    )
                )

        # One shop-api session spawned a subagent.
        subagents = tmp_path / "shop-api" / "shop-api-1" / "subagents"
        subagents.mkdir(parents=True)
        (subagents / "agent-7.jsonl").write_text("", encoding="utf-8")
        files["agent-7.jsonl"] = [tools("WebFetch", "Write")]
        return sessions, DirectoryReader(files)

    @pytest.mark.asyncio
    async def test_full_run(self, tmp_path: Path, fake_provider, cache_path: Path) -> None:
        sessions, reader = self._corpus(tmp_path)
        cache = PromptEmbeddingCache(fake_provider.model_version, cache_path)

        report = await discover_skills(
            sessions, reader, provider=fake_provider, cache=cache, now=NOW
        )

        assert report.failed_sessions == []
        assert report.total_projects == 2
        assert report.total_sessions == 11
        assert report.total_prompts == 30

        keys = [c.pattern_key for c in report.pattern_candidates]
        assert "tool:bigram:Read->Edit" in keys
        assert "bash:git-workflow" in keys
        assert "tool:bigram:WebFetch->Write" in keys
        top = report.pattern_candidates[0]
        assert top.evidence.projects == ["admin-ui", "shop-api"]
        assert top.evidence.last_seen == "2026-02-25T18:00:00+00:00"

        assert report.cluster_result is not None
        (candidate,) = report.cluster_candidates
        assert candidate.evidence.projects == ["admin-ui", "shop-api"]
        assert candidate.cluster_size == 30
        assert candidate.score_breakdown.cross_project == 1.0
        assert candidate.suggested_description.startswith("Guides workflow when: ")
        assert cache_path.exists()

    @pytest.mark.asyncio
    async def test_second_run_uses_cache(
        self, tmp_path: Path, fake_provider, cache_path: Path
    ) -> None:
        sessions, reader = self._corpus(tmp_path)
        first = PromptEmbeddingCache(fake_provider.model_version, cache_path)
        await discover_skills(sessions, reader, provider=fake_provider, cache=first, now=NOW)
        embedded = fake_provider.total_embedded

        second = PromptEmbeddingCache(fake_provider.model_version, cache_path)
        second.load()
        report = await discover_skills(
            sessions, reader, provider=fake_provider, cache=second, now=NOW
        )

        assert fake_provider.total_embedded == embedded
        assert len(report.cluster_candidates) == 1
