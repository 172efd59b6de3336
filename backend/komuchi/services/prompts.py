"""
Komuchi API — Prompt Templates
===============================

Prompt text for transcription, per-mode debriefs and chat. Kept apart from
the providers so that the mock provider and tests can reuse the section
layout of each mode.
"""

from typing import Dict, List

TRANSCRIPTION_PROMPT = """You are a precise speech-to-text system. Transcribe the attached audio.

Return ONLY a JSON object, no commentary, with this shape:
{
  "language": "<ISO 639-1 code>",
  "segments": [
    {"start": <seconds>, "end": <seconds>, "speaker": "<Speaker 1|Speaker 2|...>", "text": "<utterance>"}
  ]
}

Rules:
1. Keep every utterance in spoken order; do not summarize or paraphrase.
2. Split segments at speaker changes and natural pauses.
3. Mark inaudible words as [inaudible].
4. If the audio contains no speech, return {"language": null, "segments": []}."""


DEBRIEF_SECTIONS: Dict[str, List[str]] = {
    "general": ["Summary", "Key Points", "Action Items", "Open Questions"],
    "sales": ["Summary", "Customer Needs", "Objections", "Buying Signals", "Next Steps"],
    "interview": ["Summary", "Candidate Strengths", "Concerns", "Notable Answers", "Recommendation"],
    "meeting": ["Summary", "Decisions", "Action Items", "Owners and Deadlines", "Risks"],
}

_MODE_FOCUS = {
    "general": "a personal voice note or conversation",
    "sales": "a sales call; focus on the prospect's needs, objections and commitment",
    "interview": "a job interview; assess the candidate fairly and cite evidence from the transcript",
    "meeting": "a team meeting; capture decisions, owners and deadlines precisely",
}


def debrief_prompt(transcript: str, mode: str, title: str) -> str:
    sections = DEBRIEF_SECTIONS.get(mode, DEBRIEF_SECTIONS["general"])
    headings = "\n".join(f"## {name}" for name in sections)
    return f"""You are an expert analyst writing a debrief of {_MODE_FOCUS.get(mode, _MODE_FOCUS["general"])}.

Recording title: {title}

Write the debrief in Markdown using exactly these second-level headings, in this order:
{headings}

Use bullet points inside sections. Only state facts supported by the transcript.
If a section has nothing to report, write "None noted."

Transcript:
\"\"\"
{transcript}
\"\"\""""


CHAT_SYSTEM_PROMPT = """You are Komuchi, a thoughtful assistant that helps the user reflect on their recorded conversations.
Ground every answer in the context below. If the context does not contain the answer, say so plainly.
Be concise and specific; quote short phrases from transcripts when useful."""

EMPTY_CONTEXT_NOTE = "The user has no transcribed recordings in this scope yet."

OPENER_INSTRUCTION = (
    "Start the conversation: in two or three sentences, highlight the most interesting "
    "thing in the context and ask one open question that invites reflection."
)

NO_CONTENT_OPENER = (
    "I don't see any recordings for this yet. Record a conversation or upload audio, "
    "and once it's transcribed I can help you debrief it. What would you like to capture?"
)


def build_system_prompt(context: str) -> str:
    body = context.strip() or EMPTY_CONTEXT_NOTE
    return f"{CHAT_SYSTEM_PROMPT}\n\n=== CONTEXT ===\n{body}\n=== END CONTEXT ==="
