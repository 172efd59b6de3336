"""
Komuchi API — Diarization Service Client
=========================================

What:  Turns an enrollment audio clip into a speaker embedding by calling
       the external diarization service.
Wire:  POST {diarization_url}/embed   multipart field `audio`
       200 → {"embedding": [float, ...]}

Transport errors and 5xx replies are retried (tenacity, exponential
backoff). 4xx replies, malformed bodies and an unset URL are not retried.
Everything surfaces as ExternalServiceError (503). Repeated transport
failures open a circuit breaker, which fails calls fast with
CircuitBreakerOpenError until the recovery timeout passes.
"""

import logging
import math
from typing import List, Optional

import httpx
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from komuchi.config import settings
from komuchi.exceptions import ExternalServiceError
from komuchi.services.circuit_breaker import CircuitBreaker

logger = logging.getLogger(__name__)

SERVICE_NAME = "diarization"


class _RetryableResponse(Exception):
    def __init__(self, status_code: int):
        super().__init__(f"diarization service returned {status_code}")
        self.status_code = status_code


class DiarizationClient:
    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None):
        self._base_url = base_url
        self._timeout = timeout
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
            name=SERVICE_NAME,
        )

    @property
    def base_url(self) -> str:
        return (self._base_url if self._base_url is not None else settings.diarization_url).rstrip("/")

    @property
    def timeout(self) -> float:
        return self._timeout or settings.diarization_timeout_seconds

    async def embed(self, audio: bytes, filename: str, mime_type: str) -> List[float]:
        if not self.base_url:
            raise ExternalServiceError(
                message="Voice profile service is not configured",
                service=SERVICE_NAME,
            )

        self.circuit_breaker.can_execute()
        try:
            response = await self._post_embed(audio, filename, mime_type)
        except (httpx.HTTPError, _RetryableResponse) as e:
            self.circuit_breaker.record_failure()
            logger.error("Diarization embed failed after retries: %s", str(e))
            raise ExternalServiceError(
                message="Voice profile service is unavailable. Please try again later.",
                service=SERVICE_NAME,
                context={"error_type": type(e).__name__},
            )

        if response.status_code != 200:
            logger.warning("Diarization embed rejected: %d %s", response.status_code, response.text[:200])
            raise ExternalServiceError(
                message="Voice profile service rejected the audio",
                service=SERVICE_NAME,
                context={"status": response.status_code},
            )

        vector = self._parse_embedding(response)
        self.circuit_breaker.record_success()
        return vector

    @retry(
        retry=retry_if_exception_type((httpx.TransportError, _RetryableResponse)),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(
            initial=settings.retry_min_wait,
            max=settings.retry_max_wait,
            jitter=1,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _post_embed(self, audio: bytes, filename: str, mime_type: str) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                f"{self.base_url}/embed",
                files={"audio": (filename, audio, mime_type)},
            )
        if response.status_code >= 500:
            raise _RetryableResponse(response.status_code)
        return response

    @staticmethod
    def _parse_embedding(response: httpx.Response) -> List[float]:
        try:
            embedding = response.json().get("embedding")
            vector = [float(v) for v in embedding]
        except (ValueError, TypeError, AttributeError):
            raise ExternalServiceError(
                message="Voice profile service returned an invalid response",
                service=SERVICE_NAME,
            )
        if not vector or not all(math.isfinite(v) for v in vector):
            raise ExternalServiceError(
                message="Voice profile service returned an empty embedding",
                service=SERVICE_NAME,
            )
        return vector


diarization_client = DiarizationClient()
