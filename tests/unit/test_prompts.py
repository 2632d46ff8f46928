"""Unit tests for the prompt-collecting session processor."""

from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path

import pytest

from skillscout.discovery.aggregator import PatternAggregator
from skillscout.discovery.extractor import create_pattern_session_processor
from skillscout.discovery.models import (
    EntryStream,
    ExtractedPrompt,
    ParsedEntry,
    SessionInfo,
    SkippedEntry,
    ToolUse,
    ToolUsesEntry,
    UserPromptEntry,
)
from skillscout.discovery.prompts import (
    MIN_PROMPT_LENGTH,
    PromptCollectorResult,
    create_prompt_collecting_processor,
)


def prompt(
    text: str, session_id: str = "s1", timestamp: str = "2026-01-05T10:00:00Z"
) -> UserPromptEntry:
    return UserPromptEntry(
        prompt=ExtractedPrompt(text=text, session_id=session_id, timestamp=timestamp)
    )


def tools(*names: str) -> ToolUsesEntry:
    return ToolUsesEntry(tools=tuple(ToolUse(name=name) for name in names))


async def stream(items: list[ParsedEntry]) -> AsyncIterator[ParsedEntry]:
    for item in items:
        yield item


def session(session_id: str = "s1", project: str = "proj-a") -> SessionInfo:
    return SessionInfo(
        session_id=session_id, full_path=Path(f"/logs/{session_id}.jsonl"), project_slug=project
    )


class RecordingProcessor:
    def __init__(self) -> None:
        self.seen: list[tuple[str, list[ParsedEntry]]] = []

    async def __call__(self, info: SessionInfo, entries: EntryStream) -> None:
        self.seen.append((info.session_id, list(entries)))


class TestPromptCollection:
    @pytest.mark.asyncio
    async def test_length_threshold_uses_stripped_text(self) -> None:
        result = PromptCollectorResult()
        processor = create_prompt_collecting_processor(RecordingProcessor(), result)
        exactly = "x" * MIN_PROMPT_LENGTH
        padded_short = "   " + "y" * (MIN_PROMPT_LENGTH - 1) + "   "

        await processor(session(), stream([prompt(exactly), prompt(padded_short), prompt("short")]))

        assert [p.text for p in result.prompts["proj-a"]] == [exactly]
        assert result.total_prompts == 1

    @pytest.mark.asyncio
    async def test_original_text_and_metadata_kept(self) -> None:
        result = PromptCollectorResult()
        processor = create_prompt_collecting_processor(RecordingProcessor(), result)
        text = "  Refactor the payment retry logic please  "

        await processor(session("s9", "billing"), [prompt(text, session_id="", timestamp="T")])

        (collected,) = result.prompts["billing"]
        assert collected.text == text
        assert collected.session_id == "s9"
        assert collected.timestamp == "T"
        assert collected.project_slug == "billing"

    @pytest.mark.asyncio
    async def test_secrets_redacted_in_collected_text(self) -> None:
        result = PromptCollectorResult()
        processor = create_prompt_collecting_processor(RecordingProcessor(), result)
        text = "Use api_key=abc123longvalue456 to call the billing sandbox"

        await processor(session(), [prompt(text)])

        (collected,) = result.prompts["proj-a"]
        assert collected.text == "Use api_key=[REDACTED:api-key] to call the billing sandbox"

    @pytest.mark.asyncio
    async def test_project_absent_without_prompts(self) -> None:
        result = PromptCollectorResult()
        processor = create_prompt_collecting_processor(RecordingProcessor(), result)
        await processor(session(), stream([tools("Read", "Edit"), prompt("tiny")]))
        assert result.prompts == {}
        assert result.total_prompts == 0

    @pytest.mark.asyncio
    async def test_multiple_projects_in_arrival_order(self) -> None:
        result = PromptCollectorResult()
        processor = create_prompt_collecting_processor(RecordingProcessor(), result)
        await processor(session("s1", "beta"), [prompt("Add pagination to the orders list")])
        await processor(session("s2", "alpha"), [prompt("Document the webhook retry policy")])
        await processor(session("s3", "beta"), [prompt("Cache the product catalogue lookups")])

        assert list(result.prompts) == ["beta", "alpha"]
        assert [p.session_id for p in result.prompts["beta"]] == ["s1", "s3"]
        assert result.total_prompts == 3


class TestReplay:
    @pytest.mark.asyncio
    async def test_inner_receives_every_entry_in_order(self) -> None:
        inner = RecordingProcessor()
        processor = create_prompt_collecting_processor(inner, PromptCollectorResult())
        entries: list[ParsedEntry] = [
            tools("Read"),
            prompt("Please look at the flaky upload handler"),
            SkippedEntry(type="system"),
            tools("Edit"),
        ]

        await processor(session(), stream(entries))

        assert inner.seen == [("s1", entries)]

    @pytest.mark.asyncio
    async def test_pattern_pipeline_still_sees_tools(self) -> None:
        aggregator = PatternAggregator()
        result = PromptCollectorResult()
        processor = create_prompt_collecting_processor(
            create_pattern_session_processor(aggregator), result
        )

        await processor(
            session(),
            stream([tools("Read"), prompt("Update the README badges for CI"), tools("Edit")]),
        )

        assert "tool:bigram:Read->Edit" in aggregator.get_results()
        assert result.total_prompts == 1
