"""
Provider selection for the three AI concerns.

Each concern (transcription, debrief, chat) picks `gemini` or `mock` from
settings independently. Instances are cached per provider name so the
Gemini circuit breaker state is shared by every caller in the process.
"""

from typing import Dict

from komuchi.config import settings
from komuchi.services.llm_base import LLMService

_instances: Dict[str, LLMService] = {}


def get_llm_service(provider: str) -> LLMService:
    if provider not in _instances:
        if provider == "gemini":
            from komuchi.services.gemini_service import GeminiService

            _instances[provider] = GeminiService()
        elif provider == "mock":
            from komuchi.services.mock_llm_service import MockLLMService

            _instances[provider] = MockLLMService()
        else:
            raise ValueError(f"Unknown AI provider '{provider}'")
    return _instances[provider]


def get_transcription_service() -> LLMService:
    return get_llm_service(settings.transcription_provider)


def get_debrief_service() -> LLMService:
    return get_llm_service(settings.debrief_provider)


def get_chat_service() -> LLMService:
    return get_llm_service(settings.chat_provider)


def reset_providers() -> None:
    """Drop cached instances. Worker jobs call this because each runs in its own event loop."""
    _instances.clear()
