"""
Komuchi API — Google Gemini Provider
=====================================

What:  LLMService implementation backed by Google Gemini: audio
       transcription, per-mode debriefs and chat replies.
How:   Every model call goes through one retried coroutine
       (_generate_with_retry) guarded by a CircuitBreaker.

Error handling chain:
    call fails → tenacity retries (exponential backoff + jitter)
    → retries exhausted → breaker records a failure → LLMServiceError (503)
    → threshold reached → breaker OPEN → CircuitBreakerOpenError without calling out
    → recovery timeout → one HALF_OPEN trial → CLOSED on success

The retry decorator wraps only the network call, never the breaker check,
so an open breaker fails immediately instead of being retried.
"""

import asyncio
import logging
import time
import uuid
from pathlib import Path
from typing import Any, Dict, List, Sequence

import google.generativeai as genai
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from komuchi.config import settings
from komuchi.exceptions import CircuitBreakerOpenError, LLMServiceError
from komuchi.schemas.ai import ChatTurn, DebriefResult, TranscriptionResult
from komuchi.services import prompts
from komuchi.services.circuit_breaker import CircuitBreaker
from komuchi.services.llm_base import LLMService, build_debrief, parse_transcription_payload

logger = logging.getLogger(__name__)


class GeminiService(LLMService):
    name = "gemini"

    def __init__(self):
        if settings.gemini_api_key:
            genai.configure(api_key=settings.gemini_api_key)

        self.model = genai.GenerativeModel(settings.gemini_model)
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
            name="gemini",
        )

        logger.info(
            "GeminiService initialized with model=%s, circuit_breaker(threshold=%d, recovery=%ds)",
            settings.gemini_model,
            settings.cb_failure_threshold,
            settings.cb_recovery_timeout,
        )

    # ── Public API ────────────────────────────────────────────────────────
    async def transcribe_audio(self, audio_path: str, mime_type: str) -> TranscriptionResult:
        """
        Upload the audio to Gemini and ask for JSON segments.

        Raises:
            CircuitBreakerOpenError: breaker is open
            LLMServiceError: Gemini failed after all retries
        """

        async def call(request_id: str) -> str:
            audio_file = await asyncio.to_thread(
                genai.upload_file, path=audio_path, mime_type=mime_type
            )
            try:
                return await self._generate_with_retry(
                    self.model, [prompts.TRANSCRIPTION_PROMPT, audio_file], request_id
                )
            finally:
                await self._delete_uploaded(audio_file)

        raw = await self._guarded("transcribe", call, file=Path(audio_path).name)
        result = parse_transcription_payload(raw)
        logger.info(
            "Transcription produced %d segments, %d chars (language=%s)",
            len(result.segments),
            len(result.text),
            result.language,
        )
        return result

    async def generate_debrief(self, transcript: str, mode: str, title: str) -> DebriefResult:
        prompt = prompts.debrief_prompt(transcript, mode, title)

        async def call(request_id: str) -> str:
            return await self._generate_with_retry(self.model, [prompt], request_id)

        raw = await self._guarded("debrief", call, mode=mode)
        return build_debrief(raw)

    async def chat(self, system_prompt: str, messages: Sequence[ChatTurn]) -> str:
        """
        Gemini has no system role in `contents`; the system prompt is passed
        as system_instruction and history roles are mapped user/model.
        """
        contents: List[Dict[str, Any]] = [
            {"role": "model" if m.role == "assistant" else "user", "parts": [m.content]}
            for m in messages
            if m.role in ("user", "assistant") and m.content.strip()
        ]
        if not contents or contents[0]["role"] != "user":
            contents.insert(0, {"role": "user", "parts": [prompts.OPENER_INSTRUCTION]})

        model = genai.GenerativeModel(settings.gemini_model, system_instruction=system_prompt)

        async def call(request_id: str) -> str:
            return await self._generate_with_retry(model, contents, request_id)

        return await self._guarded("chat", call, turns=len(contents))

    async def health_check(self) -> bool:
        try:
            models = await asyncio.to_thread(lambda: list(genai.list_models()))
            target = f"models/{settings.gemini_model}"
            if target not in [m.name for m in models]:
                logger.warning("Configured model %s not found in available models", target)
            return True
        except Exception as e:
            logger.warning("Gemini health check failed: %s", str(e))
            return False

    # ── Internals ─────────────────────────────────────────────────────────
    async def _guarded(self, operation: str, call, **log_fields) -> str:
        request_id = str(uuid.uuid4())[:8]
        self.circuit_breaker.can_execute()
        logger.info("[%s] Gemini %s started %s", request_id, operation, log_fields or "")

        try:
            result = await call(request_id)
        except CircuitBreakerOpenError:
            raise
        except Exception as e:
            self.circuit_breaker.record_failure()
            logger.error(
                "[%s] Gemini %s failed after retries: %s",
                request_id,
                operation,
                str(e),
                exc_info=True,
            )
            raise LLMServiceError(
                message=f"AI {operation} failed after multiple attempts. Please try again later.",
                retry_after=self.circuit_breaker.recovery_timeout,
                context={
                    "request_id": request_id,
                    "operation": operation,
                    "attempts": settings.retry_max_attempts,
                    "error_type": type(e).__name__,
                },
            )

        self.circuit_breaker.record_success()
        return result

    @retry(
        # The SDK raises a wide range of exception types for transient API errors
        retry=retry_if_exception_type(Exception),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(
            initial=settings.retry_min_wait,
            max=settings.retry_max_wait,
            jitter=1,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _generate_with_retry(self, model, contents, request_id: str) -> str:
        start_time = time.time()
        try:
            response = await model.generate_content_async(
                contents,
                request_options={"timeout": settings.gemini_request_timeout},
            )
            text = response.text.strip() if response.text else ""
        except Exception as e:
            logger.warning(
                "[%s] Gemini call failed after %.0fms: %s",
                request_id,
                (time.time() - start_time) * 1000,
                str(e),
            )
            raise

        logger.info(
            "[%s] Gemini call completed in %.0fms, %d chars",
            request_id,
            (time.time() - start_time) * 1000,
            len(text),
        )
        return text

    @staticmethod
    async def _delete_uploaded(audio_file) -> None:
        try:
            await asyncio.to_thread(genai.delete_file, audio_file.name)
        except Exception as e:
            # Gemini expires uploaded files after 48h regardless
            logger.debug("Could not delete uploaded Gemini file: %s", str(e))
