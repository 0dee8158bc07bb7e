"""Resilient calls to the Gemini text-generation API.

Every model call in the pipeline goes through ``ResilientCallExecutor``:
retries with exponential back-off and jitter on transient failures, and a
single switch to a fallback model when the primary stays rate limited.
"""

import functools
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from google import genai
from google.api_core.exceptions import (
    DeadlineExceeded,
    InternalServerError,
    ServiceUnavailable,
    TooManyRequests,
)

from config import MODEL_RETRY_POLICY, RetryPolicy, error_status, retry_call
from mock_data import MOCK_FINDINGS_RESPONSE, MOCK_REPORT_RESPONSE

logger = logging.getLogger(__name__)

RATE_LIMIT_STATUS = 429
TRANSIENT_STATUSES = frozenset({500, 503})

# Gemini errors worth retrying even when no status is attached
_RETRYABLE_GEMINI_ERRORS: tuple[type[Exception], ...] = (
    ServiceUnavailable,
    TooManyRequests,
    DeadlineExceeded,
    InternalServerError,
)

RATE_LIMIT = "rate_limit"
TRANSIENT = "transient"
REQUEST = "request"


def classify_error(exc: BaseException) -> str:
    """Map an SDK exception onto ``rate_limit``, ``transient`` or ``request``."""
    status = error_status(exc)
    if status == RATE_LIMIT_STATUS or isinstance(exc, TooManyRequests):
        return RATE_LIMIT
    if status in TRANSIENT_STATUSES or isinstance(exc, _RETRYABLE_GEMINI_ERRORS):
        return TRANSIENT
    return REQUEST


def is_retryable_error(exc: BaseException) -> bool:
    return classify_error(exc) != REQUEST


class GenerationError(Exception):
    """Terminal failure of a model call after retries (and fallback)."""

    def __init__(self, message: str, kind: str, model: str, status: int | None, attempts: int):
        super().__init__(message)
        self.kind = kind
        self.model = model
        self.status = status
        self.attempts = attempts

    @classmethod
    def from_exception(cls, exc: Exception, model: str, attempts: int) -> "GenerationError":
        kind = classify_error(exc)
        status = error_status(exc)
        return cls(
            f"{model} failed after {attempts} attempt(s) ({kind}, status={status}): {exc}",
            kind=kind,
            model=model,
            status=status,
            attempts=attempts,
        )


@dataclass(frozen=True)
class GenerationRequest:
    """One prompt plus its generation settings."""

    prompt: str
    response_mime_type: str | None = None
    temperature: float | None = None

    def config(self) -> dict:
        config: dict = {}
        if self.response_mime_type:
            config["response_mime_type"] = self.response_mime_type
        if self.temperature is not None:
            config["temperature"] = self.temperature
        return config


class ContentGenerator(Protocol):
    def generate(self, model: str, request: GenerationRequest) -> str: ...


# ---------------------------------------------------------------------------
# Generators
# ---------------------------------------------------------------------------
@functools.lru_cache(maxsize=4)
def get_gemini_client(api_key: str) -> genai.Client:
    """Return a cached Gemini client (created once per process and key)."""
    if not api_key:
        raise ValueError("GEMINI_API_KEY not found. Set it in .env file.")
    return genai.Client(api_key=api_key)


class GeminiGenerator:
    """Single ``generate_content`` call, no retries of its own."""

    def __init__(self, api_key: str):
        self.api_key = api_key

    def generate(self, model: str, request: GenerationRequest) -> str:
        client = get_gemini_client(self.api_key)
        response = client.models.generate_content(
            model=model,
            contents=request.prompt,
            config=request.config() or None,
        )
        return response.text or ""


class MockGenerator:
    """Offline stand-in returning canned responses (USE_MOCK=true)."""

    def generate(self, model: str, request: GenerationRequest) -> str:
        logger.info("[MOCK MODE - No API call made] model=%s", model)
        if request.response_mime_type == "application/json":
            return MOCK_FINDINGS_RESPONSE
        return MOCK_REPORT_RESPONSE


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------
class ResilientCallExecutor:
    """
    Retry/back-off/fallback wrapper around a ``ContentGenerator``.

    Retryable failures (429/500/503) are retried against the same model up
    to ``policy.max_attempts`` times. If the primary model is still rate
    limited after that, one full retry cycle runs against
    ``fallback_model``. Any other terminal failure is raised straight away.
    When both cycles fail, the primary model's error is raised.
    """

    def __init__(
        self,
        generator: ContentGenerator,
        primary_model: str,
        fallback_model: str | None = None,
        policy: RetryPolicy = MODEL_RETRY_POLICY,
        sleep: Callable[[float], None] | None = None,
    ):
        self.generator = generator
        self.primary_model = primary_model
        self.fallback_model = fallback_model
        self.policy = policy
        self.sleep = sleep

    def generate(self, request: GenerationRequest) -> str:
        try:
            return self._run_cycle(self.primary_model, request)
        except GenerationError as primary_error:
            if primary_error.kind != RATE_LIMIT or not self.fallback_model:
                raise
            logger.warning(
                "Primary model rate limited (%s). Falling back to %s...",
                self.primary_model,
                self.fallback_model,
            )
            try:
                return self._run_cycle(self.fallback_model, request)
            except GenerationError as fallback_error:
                logger.error("Fallback model failed too: %s", fallback_error)
                raise primary_error

    def _run_cycle(self, model: str, request: GenerationRequest) -> str:
        attempts = 0

        def call() -> str:
            nonlocal attempts
            attempts += 1
            return self.generator.generate(model, request)

        try:
            return retry_call(
                call,
                self.policy,
                is_retryable_error,
                label=f"Gemini call ({model})",
                sleep=self.sleep,
            )
        except Exception as exc:
            raise GenerationError.from_exception(exc, model, attempts) from exc


def build_executor(settings) -> ResilientCallExecutor:
    """Executor for *settings*, honouring offline mode."""
    generator: ContentGenerator
    if settings.use_mock:
        generator = MockGenerator()
    else:
        generator = GeminiGenerator(settings.gemini_api_key)
    return ResilientCallExecutor(
        generator,
        primary_model=settings.primary_model,
        fallback_model=settings.fallback_model,
    )
