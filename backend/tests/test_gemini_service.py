"""
Komuchi API — Gemini Provider Unit Tests (Mocked)
==================================================

What:  Tests for GeminiService and the CircuitBreaker with the Google
       Generative AI SDK patched out.
How:   Patches the genai module and model to simulate success/failure.

What we test:
    ✅ Circuit breaker state machine (closed → open → half-open → closed)
    ✅ Transcription parses the JSON segments the model returns
    ✅ Debrief markdown is split into sections
    ✅ Chat maps roles and passes the system prompt as system_instruction
    ✅ Failures are retried, then surface as LLMServiceError
    ✅ An open breaker fails fast without calling the API
    ❌ Real API calls
"""

import json
import time
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from komuchi.config import settings
from komuchi.exceptions import CircuitBreakerOpenError, LLMServiceError
from komuchi.schemas.ai import ChatTurn
from komuchi.services.circuit_breaker import CircuitBreaker
from komuchi.services.gemini_service import GeminiService


class TestCircuitBreaker:
    def test_initial_state_is_closed(self):
        cb = CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        assert cb.state == "closed"
        assert cb.failure_count == 0

    def test_stays_closed_under_threshold(self):
        cb = CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        for _ in range(4):
            cb.record_failure()
        assert cb.state == "closed"
        assert cb.can_execute() is True

    def test_opens_at_threshold(self):
        cb = CircuitBreaker(failure_threshold=3, recovery_timeout=60)
        for _ in range(3):
            cb.record_failure()
        assert cb.state == "open"

    def test_open_circuit_rejects_calls(self):
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=60, name="diarization")
        cb.record_failure()

        with pytest.raises(CircuitBreakerOpenError) as exc_info:
            cb.can_execute()
        assert exc_info.value.context["breaker"] == "diarization"
        assert exc_info.value.headers["Retry-After"]

    def test_open_message_names_the_service(self):
        diarization = CircuitBreaker(failure_threshold=1, recovery_timeout=60, name="diarization")
        gemini = CircuitBreaker(failure_threshold=1, recovery_timeout=60, name="gemini")
        diarization.record_failure()
        gemini.record_failure()

        with pytest.raises(CircuitBreakerOpenError) as diarization_exc:
            diarization.can_execute()
        with pytest.raises(CircuitBreakerOpenError) as gemini_exc:
            gemini.can_execute()

        assert diarization_exc.value.message.startswith("Speaker diarization service")
        assert "AI service" not in diarization_exc.value.message
        assert gemini_exc.value.message.startswith("AI service")

    def test_success_resets_failure_count(self):
        cb = CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        cb.record_failure()
        cb.record_failure()
        assert cb.failure_count == 2

        cb.record_success()
        assert cb.failure_count == 0
        assert cb.state == "closed"

    def test_half_open_after_recovery_timeout(self):
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=0)
        cb.record_failure()
        assert cb.state == "open"

        time.sleep(0.01)
        assert cb.can_execute() is True
        assert cb.state == "half_open"

    def test_half_open_failure_reopens(self):
        cb = CircuitBreaker(failure_threshold=3, recovery_timeout=0)
        for _ in range(3):
            cb.record_failure()
        time.sleep(0.01)
        cb.can_execute()

        cb.record_failure()
        assert cb.state == "open"

    def test_half_open_success_closes(self):
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=0)
        cb.record_failure()
        time.sleep(0.01)
        cb.can_execute()

        cb.record_success()
        assert cb.state == "closed"
        assert cb.failure_count == 0


def mock_model(text: str = "", side_effect=None) -> MagicMock:
    response = MagicMock()
    response.text = text
    model = MagicMock()
    model.generate_content_async = AsyncMock(return_value=response, side_effect=side_effect)
    return model


class TestGeminiServiceMocked:
    @pytest.mark.asyncio
    async def test_transcribe_audio_parses_segments(self):
        payload = {
            "language": "en",
            "segments": [
                {"start": 0, "end": 2.5, "speaker": "Speaker 1", "text": "Hello there."},
                {"start": 2.5, "end": 5, "speaker": "Speaker 2", "text": "Hi!"},
            ],
        }
        with patch("komuchi.services.gemini_service.genai") as mock_genai:
            model = mock_model("```json\n" + json.dumps(payload) + "\n```")
            mock_genai.GenerativeModel.return_value = model
            mock_genai.upload_file.return_value = MagicMock(name="files/abc")

            service = GeminiService()
            result = await service.transcribe_audio("/tmp/audio.webm", "audio/webm")

            assert result.text == "Hello there. Hi!"
            assert [s.speaker for s in result.segments] == ["Speaker 1", "Speaker 2"]
            assert result.language == "en"
            assert result.duration == 5
            mock_genai.upload_file.assert_called_once_with(path="/tmp/audio.webm", mime_type="audio/webm")
            mock_genai.delete_file.assert_called_once()

    @pytest.mark.asyncio
    async def test_generate_debrief_returns_sections(self):
        markdown = "# Sync\n\n## Summary\n- Shipped.\n\n## Action Items\n- Write notes."
        with patch("komuchi.services.gemini_service.genai") as mock_genai:
            mock_genai.GenerativeModel.return_value = mock_model(markdown)
            service = GeminiService()

            result = await service.generate_debrief("We shipped.", "meeting", "Sync")

            assert [s.title for s in result.sections] == ["Summary", "Action Items"]
            prompt = service.model.generate_content_async.await_args.args[0][0]
            assert "## Decisions" in prompt
            assert "We shipped." in prompt

    @pytest.mark.asyncio
    async def test_chat_maps_roles(self):
        with patch("komuchi.services.gemini_service.genai") as mock_genai:
            model = mock_model("Sure.")
            mock_genai.GenerativeModel.return_value = model
            service = GeminiService()

            reply = await service.chat(
                "SYSTEM",
                [
                    ChatTurn(role="assistant", content="How did it go?"),
                    ChatTurn(role="user", content="Well."),
                ],
            )

            assert reply == "Sure."
            mock_genai.GenerativeModel.assert_called_with(settings.gemini_model, system_instruction="SYSTEM")
            contents = model.generate_content_async.await_args.args[0]
            assert [c["role"] for c in contents] == ["user", "model", "user"]

    @pytest.mark.asyncio
    async def test_failure_is_retried_then_raised(self):
        with patch("komuchi.services.gemini_service.genai") as mock_genai:
            model = mock_model(side_effect=RuntimeError("quota exceeded"))
            mock_genai.GenerativeModel.return_value = model
            service = GeminiService()

            with pytest.raises(LLMServiceError) as exc_info:
                await service.generate_debrief("text", "general", "Title")

            assert model.generate_content_async.await_count == settings.retry_max_attempts
            assert exc_info.value.context["operation"] == "debrief"
            assert service.circuit_breaker.failure_count == 1

    @pytest.mark.asyncio
    async def test_open_breaker_fails_fast(self):
        with patch("komuchi.services.gemini_service.genai") as mock_genai:
            model = mock_model("unused")
            mock_genai.GenerativeModel.return_value = model
            service = GeminiService()
            for _ in range(service.circuit_breaker.failure_threshold):
                service.circuit_breaker.record_failure()

            with pytest.raises(CircuitBreakerOpenError):
                await service.transcribe_audio("/tmp/audio.webm", "audio/webm")
            model.generate_content_async.assert_not_awaited()
            mock_genai.upload_file.assert_not_called()

    @pytest.mark.asyncio
    async def test_health_check_returns_bool(self):
        with patch("komuchi.services.gemini_service.genai") as mock_genai:
            mock_genai.list_models.side_effect = RuntimeError("no network")
            service = GeminiService()
            assert await service.health_check() is False
