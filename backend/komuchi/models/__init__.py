"""
ORM models. Importing this package registers every table on Base.metadata,
which Alembic and the test fixtures rely on.
"""

from komuchi.models.chat import ChatMessage, ChatSession
from komuchi.models.job import Job
from komuchi.models.recording import Debrief, Recording, Transcript
from komuchi.models.user import User

__all__ = [
    "ChatMessage",
    "ChatSession",
    "Debrief",
    "Job",
    "Recording",
    "Transcript",
    "User",
]
