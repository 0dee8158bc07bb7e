"""Formatting stage - turn findings into the markdown review that gets posted."""

import logging
import re
from dataclasses import dataclass

from executor import GenerationError, GenerationRequest, ResilientCallExecutor
from guardrail import SIZE_STOP_REASON
from models import (
    Bundle,
    Findings,
    MergeRecommendation,
    important_signal_count,
    recommend_merge,
)
from prompts import FORMAT_PROMPT, MERGE_RECOMMENDATION_HEADER
from storage import FINDINGS_FILE, ArtifactStore

logger = logging.getLogger(__name__)

MAX_COVERAGE_FILES = 20

_MERGE_MARKER = re.compile(
    r"^#{2,3}\s*✅\s*Merge Recommendation", re.IGNORECASE | re.MULTILINE
)
_NEXT_SECTION = re.compile(r"^#{1,2}\s", re.MULTILINE)


@dataclass
class Report:
    body: str
    degraded: bool = False
    reason: str | None = None


# ---------------------------------------------------------------------------
# Deterministic sections
# ---------------------------------------------------------------------------
def render_merge_recommendation(findings: Findings | None) -> str:
    """One-line verdict computed from the findings counts."""
    verdict = recommend_merge(findings)
    if verdict is MergeRecommendation.DO_NOT_MERGE:
        return f"❌ Do not merge. Blockers found ({len(findings.blockers)})."
    if verdict is MergeRecommendation.NEEDS_CHANGES:
        return (
            "⚠️ Needs changes before merge. "
            f"Important findings ({important_signal_count(findings)})."
        )
    return "✅ Safe to merge. No blockers or important findings."


def build_coverage_notes(bundle: Bundle | None) -> str:
    """List files whose patch never reached the model (capped)."""
    missing = bundle.stats.patch_missing_files if bundle else []
    if not missing:
        return ""

    listed = missing[:MAX_COVERAGE_FILES]
    extra = len(missing) - len(listed)
    lines = "\n".join(f"- {name}" for name in listed)
    more = f"\n- ...(and {extra} more)" if extra > 0 else ""
    return (
        "## 📦 Coverage Notes\n"
        "Some files were too large or binary and did not include patches "
        "in the PR bundle:\n"
        f"{lines}{more}\n"
    )


def apply_deterministic_sections(
    body: str, findings: Findings | None, bundle: Bundle | None
) -> str:
    """
    Put coverage notes and the computed merge verdict into *body*.

    A merge-recommendation section written by the model keeps its place but
    its content is replaced; coverage notes go right before it. Without
    such a section both are appended.
    """
    body = body.rstrip()
    coverage = build_coverage_notes(bundle).strip()
    section = f"{MERGE_RECOMMENDATION_HEADER}\n{render_merge_recommendation(findings)}"
    prefix = f"{coverage}\n\n" if coverage else ""

    match = _MERGE_MARKER.search(body)
    if match is None:
        return f"{body}\n\n{prefix}{section}"

    following = _NEXT_SECTION.search(body, match.end())
    tail = body[following.start():] if following else ""
    head = body[: match.start()]
    out = f"{head}{prefix}{section}"
    if tail:
        out += f"\n\n{tail}"
    return out


def fallback_report(
    reason: str, bundle: Bundle | None, findings: Findings | None
) -> str:
    """Report built without the model from whatever artifacts exist."""
    title = bundle.pr.title if bundle and bundle.pr.title else "(unknown)"
    head_sha = bundle.pr.head_sha if bundle and bundle.pr.head_sha else "(unknown)"
    summary = (
        findings.summary
        if findings and findings.summary
        else [reason, "No formatted Gemini review was produced."]
    )
    summary_lines = "\n".join(f"- {line}" for line in summary)
    coverage = build_coverage_notes(bundle)

    return (
        "# Gemini PR Review\n"
        "\n"
        f"**PR:** {title}  \n"
        f"**Head SHA:** {head_sha}\n"
        "\n"
        "## 🚨 Blockers\n"
        "- None (format step failed; this is a fallback review)\n"
        "\n"
        "## ✅ Summary\n"
        f"{summary_lines}\n"
        "\n"
        f"{coverage}\n"
        f"{MERGE_RECOMMENDATION_HEADER}\n"
        f"{render_merge_recommendation(findings)}\n"
        "\n"
        "## Next steps\n"
        "- Re-run the workflow (Gemini may have hit rate limits).\n"
        "- If this happens frequently, reduce PR diff size or add repo-wide "
        "concurrency for Gemini steps.\n"
    )


# ---------------------------------------------------------------------------
# Stage
# ---------------------------------------------------------------------------
class Formatter:
    """Findings in, final markdown report out; never raises on model failure."""

    def __init__(self, executor: ResilientCallExecutor):
        self.executor = executor

    def _fallback(self, reason: str, bundle, findings) -> Report:
        logger.warning("Writing fallback review: %s", reason)
        return Report(fallback_report(reason, bundle, findings), degraded=True, reason=reason)

    def build_request(self, bundle: Bundle | None, findings: Findings) -> GenerationRequest:
        prompt = FORMAT_PROMPT.format(
            title=bundle.pr.title if bundle else "(unknown)",
            head_sha=(bundle.pr.head_sha if bundle else None) or "(unknown)",
            findings=findings.to_json(),
        )
        return GenerationRequest(prompt=prompt)

    def run(
        self,
        bundle: Bundle | None,
        findings: Findings | None,
        stopped: bool = False,
    ) -> Report:
        if stopped:
            return self._fallback(SIZE_STOP_REASON, bundle, findings)
        if findings is None:
            return self._fallback(f"Missing {FINDINGS_FILE}.", bundle, None)

        try:
            out = self.executor.generate(self.build_request(bundle, findings)).strip()
        except GenerationError as e:
            logger.error("Gemini format failed: %s", e)
            return self._fallback(
                "Gemini format failed (rate limit/quota or transient error).",
                bundle,
                findings,
            )

        if not out:
            return self._fallback("Gemini returned empty formatted review.", bundle, findings)

        logger.info("Formatted review (%d chars)", len(out))
        return Report(apply_deterministic_sections(out, findings, bundle))


def format_from_store(store: ArtifactStore, formatter: Formatter) -> Report:
    """Run the stage against persisted artifacts and persist the report."""
    stopped = store.stop_requested()
    report = formatter.run(store.load_bundle(), store.load_findings(), stopped=stopped)
    store.save_report(report.body)
    return report
