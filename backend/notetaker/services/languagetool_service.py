"""
NoteTaker Backend - LanguageTool Grammar Checker
================================================

What:  Grammar checker backed by a LanguageTool-compatible HTTP API.
How:   POSTs the text as form data to /v2/check with httpx.AsyncClient and
       maps every returned match into a GrammarFinding. A circuit breaker
       fails fast while the API is known to be down.
Who:   Singleton used by NoteService.check_grammar and the health endpoint.
When:  On every POST /notes/{id}/grammar-check.

Resilience Strategy:
    1. Bounded timeout per call (GRAMMAR_TIMEOUT)
    2. No automatic retry: a failed check surfaces as DependencyError (503)
       and the client decides whether to try again
    3. Circuit breaker: after CB_FAILURE_THRESHOLD consecutive failures all
       calls fail instantly until CB_RECOVERY_TIMEOUT has passed

Response mapping (LanguageTool → GrammarFinding):
    match.message                    → message
    match.offset / match.length      → offset / length
    match.context.text               → context
    match.replacements[:3][].value   → suggestions
    match.rule.category.name         → category
"""

import logging
import time
import uuid
from typing import Any, Dict, List, Optional

import httpx

from notetaker.config import settings
from notetaker.exceptions import DependencyError
from notetaker.schemas.note import GrammarFinding
from notetaker.services.grammar_base import GrammarChecker

logger = logging.getLogger(__name__)

MAX_SUGGESTIONS = 3


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker Implementation
# ══════════════════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    Circuit breaker around the grammar API.

    State Machine:
        CLOSED (normal operation)
            → On failure: increment failure_count
            → When failure_count >= threshold: transition to OPEN

        OPEN (rejecting all requests)
            → All calls raise DependencyError immediately
            → After recovery_timeout seconds: transition to HALF_OPEN

        HALF_OPEN (testing recovery)
            → Allow the next request through
            → On success: transition to CLOSED (reset failure_count)
            → On failure: transition back to OPEN (reset timer)

    Not thread-safe; uvicorn async workers share one event loop per process.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 60):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None

    def _remaining(self) -> float:
        return self.recovery_timeout - (time.time() - (self.last_failure_time or 0))

    def is_open(self) -> bool:
        """True while calls are being rejected (OPEN and not yet due for a probe)."""
        return self.state == self.OPEN and self._remaining() > 0

    def can_execute(self) -> bool:
        """
        Check if a request is allowed through.

        Raises:
            DependencyError: Circuit is OPEN and the recovery timeout has not elapsed.
        """
        if self.state == self.CLOSED:
            return True

        if self.state == self.OPEN:
            remaining = self._remaining()
            if remaining <= 0:
                logger.info("Circuit breaker transitioning to HALF_OPEN")
                self.state = self.HALF_OPEN
                return True
            raise DependencyError(
                message="The grammar checking service is temporarily unavailable. Please try again later.",
                retry_after=max(int(remaining), 1),
                context={"circuit_state": self.state},
            )

        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Circuit breaker transitioning to CLOSED (service recovered)")
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.time()

        if self.state == self.HALF_OPEN:
            logger.warning("Circuit breaker returning to OPEN (test request failed)")
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Circuit breaker OPENING after %d consecutive failures",
                self.failure_count,
            )
            self.state = self.OPEN


# ══════════════════════════════════════════════════════════════════════════
# LanguageTool Checker
# ══════════════════════════════════════════════════════════════════════════

def _map_match(match: Dict[str, Any]) -> GrammarFinding:
    """Raises KeyError/TypeError/ValueError on a malformed match."""
    context = match.get("context") or {}
    replacements = match.get("replacements") or []
    rule = match.get("rule") or {}
    category = rule.get("category") or {}

    return GrammarFinding(
        message=match["message"],
        offset=int(match["offset"]),
        length=int(match["length"]),
        context=context.get("text", ""),
        suggestions=[r["value"] for r in replacements[:MAX_SUGGESTIONS]],
        category=category.get("name", ""),
    )


class LanguageToolChecker(GrammarChecker):
    """
    LanguageTool HTTP client with a circuit breaker.

    `transport` is passed to httpx.AsyncClient; tests use httpx.MockTransport.
    """

    def __init__(
        self,
        api_url: str = settings.grammar_api_url,
        language: str = settings.grammar_language,
        timeout: float = settings.grammar_timeout,
        circuit_breaker: Optional[CircuitBreaker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url
        self.language = language
        self.timeout = timeout
        self.circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )
        self._transport = transport

        logger.info(
            "LanguageToolChecker initialized with url=%s, language=%s, "
            "circuit_breaker(threshold=%d, recovery=%ds)",
            api_url,
            language,
            self.circuit_breaker.failure_threshold,
            self.circuit_breaker.recovery_timeout,
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def check(self, text: str) -> List[GrammarFinding]:
        check_id = str(uuid.uuid4())[:8]
        self.circuit_breaker.can_execute()

        start_time = time.time()
        try:
            async with self._client() as client:
                resp = await client.post(
                    self.api_url,
                    data={"text": text, "language": self.language},
                )
                resp.raise_for_status()
                payload = resp.json()
            findings = [_map_match(m) for m in payload["matches"]]
        except httpx.HTTPStatusError as e:
            self.circuit_breaker.record_failure()
            logger.error(
                "[%s] Grammar API returned %d: %s",
                check_id,
                e.response.status_code,
                e.response.text[:200],
            )
            raise DependencyError(
                message="The grammar checking service returned an error. Please try again later.",
                context={"check_id": check_id, "status_code": e.response.status_code},
            )
        except httpx.HTTPError as e:
            self.circuit_breaker.record_failure()
            logger.error("[%s] Grammar API unreachable: %s", check_id, str(e))
            raise DependencyError(
                message="The grammar checking service is unreachable. Please try again later.",
                context={"check_id": check_id, "error_type": type(e).__name__},
            )
        except (ValueError, KeyError, TypeError) as e:
            # Covers invalid JSON and matches missing required fields
            self.circuit_breaker.record_failure()
            logger.error("[%s] Malformed grammar API response: %s", check_id, str(e))
            raise DependencyError(
                message="The grammar checking service returned an unexpected response.",
                context={"check_id": check_id, "error_type": type(e).__name__},
            )

        self.circuit_breaker.record_success()
        logger.info(
            "[%s] Grammar check completed in %.0fms with %d findings",
            check_id,
            (time.time() - start_time) * 1000,
            len(findings),
        )
        return findings

    async def health_check(self) -> bool:
        """
        Lightweight reachability probe: GET <base>/v2/languages.

        No check quota is consumed and the circuit breaker is not touched.
        """
        if self.circuit_breaker.is_open():
            return False

        languages_url = self.api_url.rsplit("/", 1)[0] + "/languages"
        try:
            async with self._client() as client:
                resp = await client.get(languages_url)
            return resp.is_success
        except httpx.HTTPError as e:
            logger.warning("Grammar checker health check failed: %s", str(e))
            return False


# ── Singleton Instance ────────────────────────────────────────────────────
# Holds the circuit breaker state, which must be shared across requests
grammar_checker = LanguageToolChecker()
