"""
Deterministic LLMService used when a provider is configured as `mock`
(local development without API keys, and the test suite).

Outputs depend only on the inputs, so repeated runs produce identical
transcripts, debriefs and replies.
"""

import logging
from pathlib import Path
from typing import Sequence

from komuchi.schemas.ai import ChatTurn, DebriefResult, TranscriptionResult, TranscriptSegment
from komuchi.services.llm_base import LLMService, build_debrief
from komuchi.services.prompts import DEBRIEF_SECTIONS, OPENER_INSTRUCTION

logger = logging.getLogger(__name__)


class MockLLMService(LLMService):
    name = "mock"

    async def transcribe_audio(self, audio_path: str, mime_type: str) -> TranscriptionResult:
        path = Path(audio_path)
        if not path.is_file():
            raise FileNotFoundError(audio_path)
        size = path.stat().st_size
        segments = [
            TranscriptSegment(start=0.0, end=4.0, speaker="Speaker 1", text=f"This is a mock transcript of {path.name}."),
            TranscriptSegment(start=4.0, end=9.5, speaker="Speaker 2", text=f"The audio was {size} bytes of {mime_type}."),
        ]
        logger.info("Mock transcription for %s (%d bytes)", path.name, size)
        return TranscriptionResult(
            text=" ".join(s.text for s in segments),
            segments=segments,
            language="en",
            duration=segments[-1].end,
        )

    async def generate_debrief(self, transcript: str, mode: str, title: str) -> DebriefResult:
        sections = DEBRIEF_SECTIONS.get(mode, DEBRIEF_SECTIONS["general"])
        excerpt = transcript.strip()[:200] or "No speech detected."
        lines = [f"# {title}", ""]
        for name in sections:
            lines.append(f"## {name}")
            lines.append(f"- {excerpt}" if name == "Summary" else "- None noted.")
            lines.append("")
        return build_debrief("\n".join(lines))

    async def chat(self, system_prompt: str, messages: Sequence[ChatTurn]) -> str:
        last_user = next((m.content for m in reversed(messages) if m.role == "user"), "")
        has_context = "=== CONTEXT ===" in system_prompt and "no transcribed recordings" not in system_prompt
        if not last_user or last_user == OPENER_INSTRUCTION:
            if has_context:
                return "Here's what stood out from your recordings. What would you like to dig into first?"
            return "Nothing recorded here yet. What would you like to talk about?"
        return f"You asked: \"{last_user.strip()[:200]}\". Based on your recordings, here's my take."

    async def health_check(self) -> bool:
        return True
