"""Best-effort comment highlighting blocker findings."""

import json
import logging
from typing import Protocol

import requests.exceptions

from github_client import PlatformError

logger = logging.getLogger(__name__)

MAX_BLOCKERS = 5
MAX_FILES_PER_BLOCKER = 5


class CommentTarget(Protocol):
    def create_comment(self, body: str) -> int: ...


def extract_blockers(findings_text: str | None) -> list[dict]:
    """Blocker entries from raw findings JSON; empty when unusable."""
    if not findings_text:
        logger.info("No findings JSON; skipping inline comments.")
        return []
    try:
        findings = json.loads(findings_text)
    except json.JSONDecodeError:
        logger.info("Findings not valid JSON; skipping inline comments.")
        return []

    blockers = findings.get("blockers") if isinstance(findings, dict) else None
    if not isinstance(blockers, list):
        return []
    return [b for b in blockers if isinstance(b, dict)]


def format_blocker_comment(blockers: list[dict]) -> str:
    parts = []
    for i, blocker in enumerate(blockers[:MAX_BLOCKERS], 1):
        files = ", ".join(str(f) for f in (blocker.get("files") or [])[:MAX_FILES_PER_BLOCKER])
        parts.append(
            f"**BLOCKER {i}: {blocker.get('title', '')}**\n"
            f"- Files: {files or '(unspecified)'}\n"
            f"- {blocker.get('details', '')}\n"
            f"- Suggested fix: {blocker.get('suggested_fix', '')}\n"
        )
    return "### 🚨 Blocker highlights (quick)\n\n" + "\n---\n\n".join(parts)


def highlight_blockers(target: CommentTarget, findings_text: str | None) -> bool:
    """
    Post one comment listing the top blockers.

    Returns whether a comment was posted. Never raises for missing data or
    a failed post: this side channel must not change the run's outcome.
    """
    blockers = extract_blockers(findings_text)
    if not blockers:
        logger.info("No blockers; skipping inline comments.")
        return False

    try:
        target.create_comment(format_blocker_comment(blockers))
    except (PlatformError, requests.exceptions.RequestException) as e:
        logger.warning("Could not post blocker highlights: %s", e)
        return False

    logger.info("Posted blocker highlights comment.")
    return True
