"""
Komuchi API — Circuit Breaker
==============================

State machine shared by the Gemini provider and the diarization client:

    CLOSED ──N consecutive failures──▶ OPEN
    OPEN ──recovery_timeout elapsed──▶ HALF_OPEN (one trial call allowed)
    HALF_OPEN ──success──▶ CLOSED
    HALF_OPEN ──failure──▶ OPEN (timer restarts)

Not thread-safe: state lives in plain attributes. The API runs on a single
event loop per process and each RQ job gets its own provider instance, so
no locking is needed.
"""

import logging
import time
from typing import Optional

from komuchi.exceptions import CircuitBreakerOpenError

logger = logging.getLogger(__name__)

# Breaker name → service label used in the 503 message.
SERVICE_LABELS = {"llm": "AI", "gemini": "AI", "diarization": "Speaker diarization"}


class CircuitBreaker:
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 60, name: str = "llm"):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None

    def can_execute(self) -> bool:
        """
        Returns True when a call may proceed.

        Raises:
            CircuitBreakerOpenError while OPEN and the recovery timeout has
            not yet elapsed.
        """
        if self.state == self.OPEN:
            elapsed = time.time() - (self.last_failure_time or 0)
            if elapsed < self.recovery_timeout:
                raise CircuitBreakerOpenError(
                    recovery_time=int(self.recovery_timeout - elapsed),
                    service=SERVICE_LABELS.get(self.name, self.name),
                    context={"breaker": self.name},
                )
            logger.info("Circuit breaker [%s] HALF_OPEN after %.1fs", self.name, elapsed)
            self.state = self.HALF_OPEN
        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Circuit breaker [%s] CLOSED (service recovered)", self.name)
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.state == self.HALF_OPEN:
            logger.warning("Circuit breaker [%s] back to OPEN (trial call failed)", self.name)
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Circuit breaker [%s] OPEN after %d consecutive failures",
                self.name,
                self.failure_count,
            )
            self.state = self.OPEN
