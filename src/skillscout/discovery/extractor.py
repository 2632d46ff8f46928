"""Per-session pattern extraction.

Turns one session's entry stream into ``SessionPatterns``: tool-name
bigrams and trigrams plus Bash command category tallies. Sessions are read
in a single pass, and subagent sub-sessions stored beside the main log are
processed as sessions of their own, attributed to the parent's project.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import AsyncIterable, AsyncIterator, Sequence
from pathlib import Path
from typing import Final

from skillscout.core.console import get_logger

from .aggregator import PatternAggregator
from .bash_patterns import classify_bash_command
from .models import (
    EntryStream,
    ParsedEntry,
    SessionInfo,
    SessionPatterns,
    SessionProcessor,
    SessionReader,
    ToolUsesEntry,
)

logger = get_logger(__name__)

NGRAM_SEPARATOR: Final[str] = "->"
SUBAGENT_DIR: Final[str] = "subagents"


def extract_ngrams(tools: Sequence[str], n: int) -> Counter[str]:
    """Count contiguous length-``n`` windows over an ordered tool list.

    Keys join the tool names with ``->``. Sequences shorter than ``n``
    (and non-positive ``n``) yield an empty counter.
    """
    counts: Counter[str] = Counter()
    if n <= 0 or len(tools) < n:
        return counts
    for start in range(len(tools) - n + 1):
        counts[NGRAM_SEPARATOR.join(tools[start : start + n])] += 1
    return counts


async def iter_entries(entries: EntryStream) -> AsyncIterator[ParsedEntry]:
    """Iterate a sync or async entry stream uniformly."""
    if isinstance(entries, AsyncIterable):
        async for entry in entries:
            yield entry
    else:
        for entry in entries:
            yield entry


async def process_session(
    entries: EntryStream, session_id: str, project_slug: str
) -> SessionPatterns:
    """Extract tool n-grams and Bash categories from one session.

    The entry stream is consumed exactly once. Tool names from multi-tool
    entries are flattened in order; user prompts and skipped entries do not
    take part in the tool sequence.
    """
    tool_sequence: list[str] = []
    bash_counts: Counter[str] = Counter()

    async for entry in iter_entries(entries):
        if not isinstance(entry, ToolUsesEntry):
            continue
        for tool in entry.tools:
            tool_sequence.append(tool.name)
            if tool.name == "Bash":
                command = tool.input.get("command")
                if isinstance(command, str):
                    bash_counts[classify_bash_command(command)] += 1

    return SessionPatterns(
        session_id=session_id,
        project_slug=project_slug,
        tool_bigrams=extract_ngrams(tool_sequence, 2),
        tool_trigrams=extract_ngrams(tool_sequence, 3),
        bash_patterns=bash_counts,
    )


def discover_subagent_files(session_path: Path) -> list[Path]:
    """Return subagent logs stored under ``<session stem>/subagents/``.

    Paths are absolute and sorted; a missing directory yields ``[]``.
    """
    session_path = Path(session_path).expanduser().resolve()
    subagent_dir = session_path.parent / session_path.stem / SUBAGENT_DIR
    if not subagent_dir.is_dir():
        return []
    try:
        return sorted(p for p in subagent_dir.iterdir() if p.suffix == ".jsonl" and p.is_file())
    except OSError as exc:
        logger.debug("Failed to list subagent logs in %s: %s", subagent_dir, exc)
        return []


def subagent_session_id(parent_session_id: str, subagent_path: Path) -> str:
    return f"{parent_session_id}:subagent:{subagent_path.name}"


def create_pattern_session_processor(
    aggregator: PatternAggregator, reader: SessionReader | None = None
) -> SessionProcessor:
    """Build a processor that feeds a session and its subagents to ``aggregator``.

    Subagent logs are only read when a ``reader`` is supplied. A subagent log
    that cannot be read is logged and skipped.
    """

    async def processor(session: SessionInfo, entries: EntryStream) -> None:
        main = await process_session(entries, session.session_id, session.project_slug)
        aggregator.add_session_patterns(main)

        if reader is None:
            return

        for subagent_path in discover_subagent_files(session.full_path):
            sub_id = subagent_session_id(session.session_id, subagent_path)
            try:
                sub = await process_session(
                    reader.read_session(subagent_path), sub_id, session.project_slug
                )
            except OSError as exc:
                logger.debug("Skipping unreadable subagent log %s: %s", subagent_path, exc)
                continue
            aggregator.add_session_patterns(sub)

    return processor


__all__ = [
    "NGRAM_SEPARATOR",
    "create_pattern_session_processor",
    "discover_subagent_files",
    "extract_ngrams",
    "iter_entries",
    "process_session",
    "subagent_session_id",
]
