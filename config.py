"""Shared configuration and utilities for PRWarden."""

import functools
import logging
import os
import random
import re
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import TypeVar

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator

# ---------------------------------------------------------------------------
# Environment & logging (initialised once on first import)
# ---------------------------------------------------------------------------
load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
DEFAULT_PRIMARY_MODEL: str = "gemini-2.5-flash"
DEFAULT_FALLBACK_MODEL: str = "gemini-2.0-flash"
DEFAULT_CONTEXT_PATH: str = ".github/gemini_context.md"
DEFAULT_GITHUB_API_URL: str = "https://api.github.com"

# Repo format: "owner/repo"
_REPO_PATTERN = re.compile(r"^[\w.-]+/[\w.-]+$")


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------
def validate_repo(repo: str) -> str:
    """Validate repository string matches 'owner/repo' format.

    Returns *repo* unchanged on success; raises ``ValueError`` otherwise.
    """
    if not _REPO_PATTERN.match(repo):
        raise ValueError(
            f"Invalid repo format: {repo!r}. Expected 'owner/repo' "
            f"(e.g. 'octo-org/service')."
        )
    return repo


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------
class Settings(BaseModel):
    """Everything a pipeline run reads from the environment."""

    repo: str | None = None
    pr_number: int | None = Field(default=None, gt=0)
    github_token: str = ""
    github_api_url: str = DEFAULT_GITHUB_API_URL
    gemini_api_key: str = ""
    primary_model: str = DEFAULT_PRIMARY_MODEL
    fallback_model: str = DEFAULT_FALLBACK_MODEL
    artifact_dir: str = "."
    context_path: str = DEFAULT_CONTEXT_PATH
    use_mock: bool = False

    @field_validator("repo")
    @classmethod
    def _check_repo(cls, value: str | None) -> str | None:
        return value if value is None else validate_repo(value)

    @model_validator(mode="after")
    def _check_models(self) -> "Settings":
        if self.primary_model == self.fallback_model:
            raise ValueError(
                "GEMINI_FALLBACK_MODEL must differ from GEMINI_PRIMARY_MODEL"
            )
        return self


def load_settings(
    environ: Mapping[str, str],
    require_github: bool = False,
) -> Settings:
    """
    Build ``Settings`` from an environment mapping.

    Only the stages that talk to GitHub need the PR coordinates and a token.
    The model stages read everything else from the artifact directory. A
    missing Gemini key is not a configuration error: model calls fail and
    the stages fall back, so the PR still gets an explanation.

    Raises:
        ValueError: listing every missing variable, or on malformed values
    """
    required = ["REPO", "PR_NUMBER", "GITHUB_TOKEN"] if require_github else []

    missing = [key for key in required if not environ.get(key)]

    gemini_key = environ.get("GEMINI_REVIEW_API_KEY") or environ.get(
        "GEMINI_API_KEY", ""
    )
    if missing:
        raise ValueError(f"Missing required env vars: {', '.join(missing)}")

    pr_number = None
    if environ.get("PR_NUMBER"):
        try:
            pr_number = int(environ["PR_NUMBER"])
        except ValueError as e:
            raise ValueError(
                f"PR_NUMBER must be an integer, got {environ['PR_NUMBER']!r}"
            ) from e

    return Settings(
        repo=environ.get("REPO") or None,
        pr_number=pr_number,
        github_token=environ.get("GITHUB_TOKEN", ""),
        github_api_url=environ.get("GITHUB_API_URL") or DEFAULT_GITHUB_API_URL,
        gemini_api_key=gemini_key,
        primary_model=environ.get("GEMINI_PRIMARY_MODEL") or DEFAULT_PRIMARY_MODEL,
        fallback_model=environ.get("GEMINI_FALLBACK_MODEL")
        or DEFAULT_FALLBACK_MODEL,
        artifact_dir=environ.get("REVIEW_ARTIFACT_DIR") or ".",
        context_path=environ.get("REVIEW_CONTEXT_PATH") or DEFAULT_CONTEXT_PATH,
        use_mock=environ.get("USE_MOCK", "false").lower() == "true",
    )


# ---------------------------------------------------------------------------
# Retry policy
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential back-off with random jitter (all in seconds)."""

    max_attempts: int = 6
    base_delay: float = 1.5
    max_delay: float = 20.0
    max_jitter: float = 0.7

    def delay_for(self, attempt: int, rng: Callable[[], float] = random.random) -> float:
        """Wait before the attempt following *attempt* (1-based)."""
        exp = min(self.max_delay, self.base_delay * (2 ** (attempt - 1)))
        return exp + rng() * self.max_jitter


# Gemini calls: 6 attempts, 1.5s base, 20s cap, up to 700ms jitter
MODEL_RETRY_POLICY = RetryPolicy()

# GitHub writes: 4 attempts, 1s base, 8s cap, up to 500ms jitter
PUBLISH_RETRY_POLICY = RetryPolicy(
    max_attempts=4, base_delay=1.0, max_delay=8.0, max_jitter=0.5
)


def error_status(exc: BaseException) -> int | None:
    """Best-effort HTTP status of an SDK exception (genai, api_core, PyGithub)."""
    for attr in ("code", "status", "status_code"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return int(value)
    response = getattr(exc, "response", None)
    status_code = getattr(response, "status_code", None)
    if isinstance(status_code, int):
        return status_code
    return None


def retry_call(
    func: Callable[[], T],
    policy: RetryPolicy,
    is_retryable: Callable[[Exception], bool],
    label: str = "call",
    sleep: Callable[[float], None] | None = None,
) -> T:
    """
    Run *func* until it succeeds, fails non-retryably or runs out of attempts.

    The last exception is re-raised unchanged so callers can classify it.
    """
    sleep = sleep or time.sleep
    last_exc: Exception | None = None
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return func()
        except Exception as exc:
            last_exc = exc
            if not is_retryable(exc) or attempt == policy.max_attempts:
                break
            delay = policy.delay_for(attempt)
            logger.warning(
                "%s failed (attempt %d/%d) status=%s. Retrying in %.2fs…",
                label,
                attempt,
                policy.max_attempts,
                error_status(exc),
                delay,
            )
            sleep(delay)
    raise last_exc  # type: ignore[misc]


def with_retry(
    max_retries: int = 3,
    base_delay: float = 1.0,
    retryable: tuple[type[Exception], ...] = (Exception,),
):
    """Decorator: retry a function with exponential back-off."""
    policy = RetryPolicy(
        max_attempts=max_retries,
        base_delay=base_delay,
        max_delay=base_delay * (2 ** max_retries),
        max_jitter=0.0,
    )

    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            return retry_call(
                lambda: func(*args, **kwargs),
                policy,
                lambda exc: isinstance(exc, retryable),
                label=func.__name__,
            )

        return wrapper

    return decorator


def load_repo_context(path: str) -> str:
    """Optional free-text repository context shown to the model."""
    if not path or not os.path.exists(path):
        return ""
    with open(path, encoding="utf-8") as fh:
        return fh.read()
