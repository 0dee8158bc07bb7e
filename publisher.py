"""Publish stage - post the final review, falling back to a plain comment."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from config import PUBLISH_RETRY_POLICY, RetryPolicy, error_status, retry_call
from formatter import fallback_report
from github_client import RETRYABLE_STATUSES
from models import Bundle
from storage import FINDINGS_FILE, REPORT_FILE, ArtifactStore

logger = logging.getLogger(__name__)

MAX_BODY_CHARS = 60000
TRUNCATION_NOTICE = "\n\n_(Truncated due to size.)_"

REVIEW = "review"
COMMENT = "comment"


class PublishError(Exception):
    """Neither the review nor the fallback comment could be posted."""


class ReviewTarget(Protocol):
    def create_review(self, body: str, commit_sha: str | None = None) -> int: ...

    def create_comment(self, body: str) -> int: ...


@dataclass
class PublishResult:
    channel: str  # "review" or "comment"
    id: int


def is_retryable_platform_error(exc: BaseException) -> bool:
    return error_status(exc) in RETRYABLE_STATUSES


def truncate_body(body: str, max_chars: int = MAX_BODY_CHARS) -> str:
    if len(body) <= max_chars:
        return body
    return body[:max_chars] + TRUNCATION_NOTICE


def missing_report_body(bundle: Bundle | None, findings_present: bool) -> str:
    """Minimal text posted when no report artifact exists at all."""
    title = bundle.pr.title if bundle and bundle.pr.title else "(unknown PR title)"
    sha = bundle.pr.head_sha if bundle and bundle.pr.head_sha else "(unknown sha)"
    return (
        "# Gemini PR Review (fallback)\n"
        "\n"
        f"**PR:** {title}  \n"
        f"**Head SHA:** {sha}\n"
        "\n"
        f"Gemini did not produce a formatted review file (`{REPORT_FILE}` missing).  \n"
        "This usually happens due to rate limits/quota or earlier step failures.\n"
        "\n"
        "## What you can do\n"
        "- Re-run the workflow.\n"
        "- Reduce PR size if diffs are large.\n"
        "- Enable repo-wide concurrency for the Gemini steps.\n"
        "\n"
        f"Raw findings JSON present: **{'Yes' if findings_present else 'No'}**\n"
    )


class Publisher:
    """Post as a formal review; on failure post a plain PR comment."""

    def __init__(
        self,
        target: ReviewTarget,
        policy: RetryPolicy = PUBLISH_RETRY_POLICY,
        sleep: Callable[[float], None] | None = None,
    ):
        self.target = target
        self.policy = policy
        self.sleep = sleep

    def _with_retry(self, func, label: str):
        return retry_call(
            func, self.policy, is_retryable_platform_error, label=label, sleep=self.sleep
        )

    def run(self, body: str, commit_sha: str | None = None) -> PublishResult:
        """
        Publish *body* and report which channel took it.

        Raises:
            PublishError: if the review and the comment both fail
        """
        final_body = truncate_body(body)

        try:
            review_id = self._with_retry(
                lambda: self.target.create_review(final_body, commit_sha),
                "PR review post",
            )
            logger.info("Posted PR review.")
            return PublishResult(REVIEW, review_id)
        except Exception as e:
            logger.warning(
                "Failed to post PR review. Falling back to issue comment: %s", e
            )

        try:
            comment_id = self._with_retry(
                lambda: self.target.create_comment(final_body),
                "PR comment post",
            )
        except Exception as e:
            logger.error("Failed to post issue comment: %s", e)
            raise PublishError(f"Could not publish review or comment: {e}") from e

        logger.info("Posted PR review as issue comment.")
        return PublishResult(COMMENT, comment_id)


def resolve_body(store: ArtifactStore) -> str:
    """
    The text to post: the report, else a fallback report rebuilt from the
    findings, else the fixed minimal body.
    """
    body = store.load_report()
    if body and body.strip():
        return body

    bundle = store.load_bundle()
    findings = store.load_findings()
    logger.warning("%s missing; posting fallback body.", REPORT_FILE)
    if findings is not None:
        return fallback_report(f"{REPORT_FILE} was not produced.", bundle, findings)
    return missing_report_body(bundle, store.exists(FINDINGS_FILE))


def publish_from_store(store: ArtifactStore, publisher: Publisher) -> PublishResult:
    bundle = store.load_bundle()
    return publisher.run(
        resolve_body(store),
        commit_sha=bundle.pr.head_sha if bundle else None,
    )
