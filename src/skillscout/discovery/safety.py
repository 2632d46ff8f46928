"""Content and boundary safety for discovery.

Session logs hold whatever the user typed and whatever the assistant ran,
including credentials. Before any of that text is kept (cluster labels,
example prompts, embedding inputs) it goes through :func:`redact_secrets`.

Provides:
    - SECRET_PATTERNS: named detectors for common credential formats
    - redact_secrets(): replace detected secrets with ``[REDACTED:<name>]``
    - filter_structural_only(): strip an entry down to tool names
    - structural_entries(): apply the filter to a whole entry stream
    - validate_project_access(): allow/exclude list check for a project
"""

from __future__ import annotations

import math
import re
from collections.abc import AsyncIterator, Collection
from dataclasses import dataclass
from typing import Final

from .extractor import iter_entries
from .models import (
    EntryStream,
    ParsedEntry,
    SkippedEntry,
    ToolUse,
    ToolUsesEntry,
    UserPromptEntry,
)


@dataclass(frozen=True, slots=True)
class SecretPattern:
    """A named secret detector.

    When ``pattern`` has a ``value`` group only that group is redacted, so
    the surrounding ``name=`` or ``Bearer`` context stays readable.
    """

    name: str
    pattern: re.Pattern[str]
    min_entropy: float = 0.0


# Order matters: specific token formats run before the generic assignments.
SECRET_PATTERNS: Final[tuple[SecretPattern, ...]] = (
    SecretPattern(
        "private-key",
        re.compile(
            r"-----BEGIN[A-Z ]*PRIVATE KEY-----.*?(?:-----END[A-Z ]*PRIVATE KEY-----|\Z)",
            re.DOTALL,
        ),
    ),
    SecretPattern("aws-key", re.compile(r"\b(?:AKIA|ASIA)[0-9A-Z]{16}\b")),
    SecretPattern("github-token", re.compile(r"\bgh[pousr]_[A-Za-z0-9]{20,}")),
    SecretPattern("npm-token", re.compile(r"\bnpm_[A-Za-z0-9]{20,}")),
    SecretPattern("stripe-key", re.compile(r"\b[spr]k_(?:live|test)_[A-Za-z0-9]{16,}")),
    SecretPattern("slack-token", re.compile(r"\bxox[abprs]-[A-Za-z0-9\-]{10,}")),
    SecretPattern("openai-key", re.compile(r"\bsk-[A-Za-z0-9_\-]{20,}")),
    SecretPattern("google-api-key", re.compile(r"\bAIza[A-Za-z0-9_\-]{20,}")),
    SecretPattern(
        "bearer-token",
        re.compile(r"\bBearer\s+(?P<value>[A-Za-z0-9\-._~+/]{8,}=*)"),
    ),
    SecretPattern(
        "api-key",
        re.compile(
            r"""(?ix)
            \bapi[_-]?key ['"]? \s*[=:]\s* ['"]?
            (?P<value>[A-Za-z0-9_\-./+]{12,})
            """
        ),
    ),
    SecretPattern(
        "password",
        re.compile(
            r"""(?ix)
            \b(?:password|passwd|pwd) ['"]? \s*[=:]\s* ['"]?
            (?P<value>[^\s'"]{6,})
            """
        ),
    ),
    SecretPattern(
        "generic-secret",
        re.compile(
            r"""(?ix)
            \b[a-z0-9_]*(?:secret|token|credential)[a-z0-9_]* ['"]? \s*[=:]\s* ['"]?
            (?P<value>[A-Za-z0-9_\-./+]{16,})
            """
        ),
        min_entropy=3.0,
    ),
)


def _estimate_entropy(value: str) -> float:
    """Rough entropy estimator for secret-like strings."""
    if not value:
        return 0.0
    freq = {ch: value.count(ch) for ch in set(value)}
    length = len(value)

    entropy = 0.0
    for count in freq.values():
        p = count / length
        entropy -= p * math.log(p, 2)
    return entropy


def _redact_match(match: re.Match[str], secret: SecretPattern) -> str:
    marker = f"[REDACTED:{secret.name}]"
    if "value" not in match.re.groupindex:
        return marker
    if _estimate_entropy(match.group("value")) < secret.min_entropy:
        return match.group(0)
    start, end = match.span("value")
    offset = match.start()
    text = match.group(0)
    return text[: start - offset] + marker + text[end - offset :]


def redact_secrets(text: str) -> str:
    """Replace every detected secret in ``text`` with a tagged marker.

    Text without secrets is returned unchanged.
    """
    for secret in SECRET_PATTERNS:
        text = secret.pattern.sub(lambda match, s=secret: _redact_match(match, s), text)
    return text


def filter_structural_only(entry: ParsedEntry) -> ParsedEntry | None:
    """Keep only the structure of an entry.

    User prompts are dropped. Tool inputs are replaced by ``{"redacted":
    True}``; Bash keeps its command, with secrets redacted, so command
    categories can still be mined.
    """
    if isinstance(entry, UserPromptEntry):
        return None
    if isinstance(entry, SkippedEntry):
        return entry

    tools: list[ToolUse] = []
    for tool in entry.tools:
        command = tool.input.get("command")
        if tool.name == "Bash" and isinstance(command, str):
            tools.append(ToolUse(tool.name, {"command": redact_secrets(command), "redacted": True}))
        else:
            tools.append(ToolUse(tool.name, {"redacted": True}))
    return ToolUsesEntry(tools=tuple(tools))


async def structural_entries(entries: EntryStream) -> AsyncIterator[ParsedEntry]:
    """Yield :func:`filter_structural_only` of each entry, skipping dropped ones."""
    async for entry in iter_entries(entries):
        filtered = filter_structural_only(entry)
        if filtered is not None:
            yield filtered


def validate_project_access(
    project_slug: str,
    allow_projects: Collection[str] | None = None,
    exclude_projects: Collection[str] = (),
) -> bool:
    """Return True if ``project_slug`` may be scanned.

    The exclude list always wins. ``allow_projects=None`` means every
    project not excluded is allowed.
    """
    if project_slug in exclude_projects:
        return False
    return allow_projects is None or project_slug in allow_projects


__all__ = [
    "SECRET_PATTERNS",
    "SecretPattern",
    "filter_structural_only",
    "redact_secrets",
    "structural_entries",
    "validate_project_access",
]
