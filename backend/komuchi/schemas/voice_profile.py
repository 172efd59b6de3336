"""Voice profile payloads."""

from komuchi.schemas.common import CamelModel


class VoiceProfileStatus(CamelModel):
    has_voice_profile: bool


class VoiceProfileEnrolled(CamelModel):
    success: bool = True
    has_voice_profile: bool = True
    embedding_dimensions: int
