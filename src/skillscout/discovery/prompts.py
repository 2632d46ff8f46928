"""User prompt collection for semantic clustering.

Wraps a session processor so that, while the session's entries flow to the
pattern pipeline as usual, real user prompts are also gathered per project.
Entry streams can only be consumed once, so the wrapper buffers a session's
entries, collects prompts from the buffer and then replays every entry to
the wrapped processor. Collected text has secrets redacted before it can
reach embedding inputs or cluster labels.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Final

from .extractor import iter_entries
from .models import (
    CollectedPrompt,
    EntryStream,
    ParsedEntry,
    SessionInfo,
    SessionProcessor,
    UserPromptEntry,
)
from .safety import redact_secrets

MIN_PROMPT_LENGTH: Final[int] = 20


@dataclass
class PromptCollectorResult:
    """Collected prompts keyed by project slug, in arrival order."""

    prompts: dict[str, list[CollectedPrompt]] = field(default_factory=dict)

    @property
    def total_prompts(self) -> int:
        return sum(len(items) for items in self.prompts.values())


def create_prompt_collecting_processor(
    inner: SessionProcessor, result: PromptCollectorResult
) -> SessionProcessor:
    """Wrap ``inner`` so user prompts of 20+ characters are recorded in ``result``.

    The length check applies to the stripped text; the stored prompt keeps
    the original text apart from redacted secrets. Projects only appear in
    ``result`` once they have a collected prompt.
    """

    async def processor(session: SessionInfo, entries: EntryStream) -> None:
        buffered: list[ParsedEntry] = [entry async for entry in iter_entries(entries)]

        for entry in buffered:
            if not isinstance(entry, UserPromptEntry):
                continue
            prompt = entry.prompt
            if len(prompt.text.strip()) < MIN_PROMPT_LENGTH:
                continue
            result.prompts.setdefault(session.project_slug, []).append(
                CollectedPrompt(
                    text=redact_secrets(prompt.text),
                    session_id=prompt.session_id or session.session_id,
                    timestamp=prompt.timestamp,
                    project_slug=session.project_slug,
                )
            )

        await inner(session, buffered)

    return processor


__all__ = [
    "MIN_PROMPT_LENGTH",
    "PromptCollectorResult",
    "create_prompt_collecting_processor",
]
