"""String enums shared by the ORM models, schemas and services."""

import enum


class RecordingMode(str, enum.Enum):
    GENERAL = "general"
    SALES = "sales"
    INTERVIEW = "interview"
    MEETING = "meeting"


class RecordingStatus(str, enum.Enum):
    PENDING = "pending"
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    COMPLETE = "complete"
    FAILED = "failed"


class JobType(str, enum.Enum):
    TRANSCRIBE = "TRANSCRIBE"
    DEBRIEF = "DEBRIEF"


class JobStatus(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETE = "complete"
    FAILED = "failed"


ACTIVE_JOB_STATUSES = (JobStatus.PENDING.value, JobStatus.RUNNING.value)


class ChatRole(str, enum.Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
