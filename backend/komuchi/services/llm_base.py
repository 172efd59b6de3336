"""
Komuchi API — LLM Service Interface
====================================

What:  Abstract base class every AI provider implements, plus the
       provider-independent helpers that turn raw model output into
       TranscriptionResult / DebriefResult.
How:   GeminiService and MockLLMService subclass LLMService. The pipeline
       and chat service depend only on this interface and obtain concrete
       instances from komuchi.services.ai_providers.

Interface contract:
    transcribe_audio(path, mime_type) → TranscriptionResult
    generate_debrief(transcript, mode, title) → DebriefResult
    chat(system_prompt, messages) → str
    health_check() → bool (never raises)
"""

import json
import re
from abc import ABC, abstractmethod
from typing import Any, List, Sequence

from komuchi.schemas.ai import (
    ChatTurn,
    DebriefResult,
    DebriefSection,
    TranscriptionResult,
    TranscriptSegment,
)


class LLMService(ABC):
    """Abstract interface for transcription, debrief and chat providers."""

    name: str = "abstract"

    @abstractmethod
    async def transcribe_audio(self, audio_path: str, mime_type: str) -> TranscriptionResult:
        """
        Transcribe an audio file.

        Raises:
            LLMServiceError: provider failed after retries
            CircuitBreakerOpenError: provider is temporarily disabled
        """

    @abstractmethod
    async def generate_debrief(self, transcript: str, mode: str, title: str) -> DebriefResult:
        """Produce a markdown debrief for a transcript in the given recording mode."""

    @abstractmethod
    async def chat(self, system_prompt: str, messages: Sequence[ChatTurn]) -> str:
        """Return the assistant's next message for a conversation."""

    @abstractmethod
    async def health_check(self) -> bool:
        """True when the provider is reachable and authenticated."""


# ══════════════════════════════════════════════════════════════════════════
# Output parsing
# ══════════════════════════════════════════════════════════════════════════

_FENCE = re.compile(r"^```[a-zA-Z0-9_-]*\s*\n?|\n?```\s*$")
_HEADING = re.compile(r"^##\s+(.+?)\s*#*\s*$")


def strip_code_fences(raw: str) -> str:
    """Remove a surrounding ```json ... ``` fence if the model added one."""
    return _FENCE.sub("", raw.strip()).strip()


def parse_transcription_payload(raw: str) -> TranscriptionResult:
    """
    Parse model output into a TranscriptionResult.

    Expected JSON: {"language": "en", "segments": [{"start", "end", "text", "speaker"}]}.
    Anything that is not that shape is treated as plain transcript text and
    becomes a single segment.
    """
    body = strip_code_fences(raw or "")
    if not body:
        return TranscriptionResult(text="", segments=[])

    try:
        payload: Any = json.loads(body)
    except json.JSONDecodeError:
        payload = None

    if isinstance(payload, dict) and isinstance(payload.get("segments"), list):
        segments: List[TranscriptSegment] = []
        for item in payload["segments"]:
            if not isinstance(item, dict) or not str(item.get("text", "")).strip():
                continue
            segments.append(
                TranscriptSegment(
                    start=float(item.get("start") or 0.0),
                    end=float(item.get("end") or 0.0),
                    text=str(item["text"]).strip(),
                    speaker=item.get("speaker"),
                )
            )
        text = payload.get("text") or " ".join(s.text for s in segments)
        duration = max((s.end for s in segments), default=None) or None
        return TranscriptionResult(
            text=str(text).strip(),
            segments=segments,
            language=payload.get("language"),
            duration=duration,
        )

    return TranscriptionResult(text=body, segments=[TranscriptSegment(text=body)])


def parse_debrief_sections(markdown: str) -> List[DebriefSection]:
    """
    Split debrief markdown into sections at `## ` headings.

    Text before the first heading (ignoring a leading `# ` title line)
    becomes a "Summary" section. Sections with no content are kept; the
    heading itself carries meaning for the client.
    """
    sections: List[DebriefSection] = []
    title = None
    buffer: List[str] = []

    def flush() -> None:
        content = "\n".join(buffer).strip()
        if title is None and not content:
            return
        sections.append(
            DebriefSection(title=title or "Summary", content=content, order=len(sections))
        )

    for line in (markdown or "").splitlines():
        match = _HEADING.match(line)
        if match:
            flush()
            title = match.group(1).strip()
            buffer = []
        elif title is None and line.startswith("# "):
            continue
        else:
            buffer.append(line)
    flush()
    return sections


def build_debrief(markdown: str) -> DebriefResult:
    cleaned = strip_code_fences(markdown or "")
    return DebriefResult(markdown=cleaned, sections=parse_debrief_sections(cleaned))
