"""Shell command classification for session analysis.

Classifies Bash tool invocations into workflow categories (git, test, build,
package, file-op, search, scripted, other) and normalizes commands to keyword
form so recurring shell workflows can be counted separately from tool
sequence n-grams.

Classification never raises: empty, multi-line or otherwise odd input falls
through to ``"other"``.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Final

from .models import BashCategory, ParsedEntry, ToolUsesEntry

MAX_COMMAND_LENGTH: Final[int] = 500

FILE_OPS: Final[frozenset[str]] = frozenset(
    {"ls", "cat", "mkdir", "cp", "mv", "rm", "touch", "chmod"}
)
SEARCH_CMDS: Final[frozenset[str]] = frozenset({"find", "grep", "rg", "ag"})
PYTHON_CMDS: Final[frozenset[str]] = frozenset({"python", "python3"})
JS_TEST_RUNNERS: Final[frozenset[str]] = frozenset({"vitest", "jest"})
JS_BUILD_TOOLS: Final[frozenset[str]] = frozenset({"tsc", "esbuild"})
NPM_PACKAGE_SUBCOMMANDS: Final[frozenset[str]] = frozenset(
    {"install", "add", "remove", "uninstall"}
)
CHAIN_SEPARATOR: Final[str] = "&&"


@dataclass(frozen=True, slots=True)
class BashPattern:
    """A classified and normalized Bash command."""

    category: BashCategory
    command: str
    normalized: str


def _first_line(command: str) -> str:
    trimmed = command.strip()
    if not trimmed:
        return ""
    return trimmed.splitlines()[0].strip()


def _split_segments(line: str) -> list[str]:
    return [segment.strip() for segment in line.split(CHAIN_SEPARATOR) if segment.strip()]


def classify_bash_command(command: str) -> BashCategory:
    """Classify a shell command into a workflow category.

    Only the first line is considered, and for ``&&`` chains only the first
    segment: ``git add . && npm test`` is a git workflow.
    """
    line = _first_line(command)
    segments = _split_segments(line)
    if not segments:
        return "other"

    tokens = segments[0].split()
    cmd = tokens[0]
    sub = tokens[1] if len(tokens) > 1 else ""

    if cmd == "git":
        return "git-workflow"

    if cmd == "npx" and sub in JS_TEST_RUNNERS:
        return "test-command"
    if cmd == "npm" and sub == "test":
        return "test-command"
    if cmd == "pytest":
        return "test-command"
    if cmd == "cargo" and sub == "test":
        return "test-command"

    if cmd == "npx" and sub in JS_BUILD_TOOLS:
        return "build-command"
    if cmd == "npm" and sub == "run":
        return "build-command"
    if cmd == "cargo" and sub == "build":
        return "build-command"

    if cmd == "npm" and sub in NPM_PACKAGE_SUBCOMMANDS:
        return "package-management"
    if cmd in {"yarn", "pnpm"} and sub in {"add", "remove"}:
        return "package-management"

    if cmd in FILE_OPS:
        return "file-operation"

    if cmd in SEARCH_CMDS:
        return "search"

    if cmd in PYTHON_CMDS and sub == "-c":
        return "scripted"
    if cmd == "node" and sub == "-e":
        return "scripted"

    return "other"


def _looks_like_argument(token: str) -> bool:
    return token.startswith(("-", "/", ".")) or "/" in token


def _normalize_segment(segment: str) -> str:
    tokens = segment.split()
    if not tokens:
        return ""
    cmd = tokens[0]
    sub = tokens[1] if len(tokens) > 1 else ""

    if cmd in {"git", "npm", "yarn", "pnpm", "cargo"}:
        return f"{cmd} {sub}" if sub else cmd

    if cmd == "npx":
        if not sub:
            return "npx"
        extra = tokens[2] if len(tokens) > 2 else ""
        if extra and not _looks_like_argument(extra):
            return f"npx {sub} {extra}"
        return f"npx {sub}"

    if cmd in PYTHON_CMDS and sub == "-c":
        return f"{cmd} -c"
    if cmd == "node" and sub == "-e":
        return "node -e"

    return cmd


def normalize_bash_command(command: str) -> str:
    """Reduce a command to keyword form, keeping ``&&`` chain structure.

    ``git commit -m "wip" && npx vitest run src/`` becomes
    ``git commit && npx vitest run``.
    """
    line = _first_line(command)
    normalized = [_normalize_segment(segment) for segment in _split_segments(line)]
    return f" {CHAIN_SEPARATOR} ".join(part for part in normalized if part)


def extract_bash_patterns(entries: Iterable[ParsedEntry]) -> list[BashPattern]:
    """Classify every Bash tool invocation found in ``entries``.

    Invocations whose ``command`` input is not a string are skipped.
    Commands longer than ``MAX_COMMAND_LENGTH`` are truncated for storage.
    """
    patterns: list[BashPattern] = []
    for entry in entries:
        if not isinstance(entry, ToolUsesEntry):
            continue
        for tool in entry.tools:
            if tool.name != "Bash":
                continue
            raw_command = tool.input.get("command")
            if not isinstance(raw_command, str):
                continue
            command = raw_command[:MAX_COMMAND_LENGTH]
            patterns.append(
                BashPattern(
                    category=classify_bash_command(command),
                    command=command,
                    normalized=normalize_bash_command(command),
                )
            )
    return patterns


__all__ = [
    "MAX_COMMAND_LENGTH",
    "BashPattern",
    "classify_bash_command",
    "extract_bash_patterns",
    "normalize_bash_command",
]
