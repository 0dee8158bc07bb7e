"""Size guardrail: stop before analysing PRs too large to review reliably."""

import logging
from dataclasses import dataclass

from models import Bundle
from storage import STOP_FILE, ArtifactStore

logger = logging.getLogger(__name__)

MAX_FILES_INCLUDED = 60
MAX_TOTAL_CHANGES = 2500  # additions + deletions

SIZE_STOP_REASON = "PR too large for reliable automated review. Please split it."


@dataclass(frozen=True)
class GuardrailVerdict:
    proceed: bool
    files_included: int
    total_changes: int

    @property
    def stop(self) -> bool:
        return not self.proceed

    def sentinel_text(self) -> str:
        return (
            f"Too large: files_included={self.files_included}, "
            f"totalChanges={self.total_changes}\n"
        )


def check_size(
    bundle: Bundle,
    max_files: int = MAX_FILES_INCLUDED,
    max_changes: int = MAX_TOTAL_CHANGES,
) -> GuardrailVerdict:
    """Pure decision over the bundle statistics."""
    files_included = bundle.stats.files_included
    total_changes = bundle.stats.total_changes
    proceed = files_included <= max_files and total_changes <= max_changes
    return GuardrailVerdict(proceed, files_included, total_changes)


def apply_guardrail(bundle: Bundle, store: ArtifactStore) -> GuardrailVerdict:
    """Check *bundle* and mirror the verdict as the stop sentinel in *store*."""
    verdict = check_size(bundle)
    if verdict.stop:
        store.write_text(STOP_FILE, verdict.sentinel_text())
        logger.warning(
            "PR too large for reliable Gemini review (%d files, %d changed lines). "
            "%s created.",
            verdict.files_included,
            verdict.total_changes,
            STOP_FILE,
        )
    else:
        # a sentinel left over from an earlier run must not stop this one
        store.delete(STOP_FILE)
        logger.info("PR size within guardrails.")
    return verdict
