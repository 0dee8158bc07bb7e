"""Analysis stage - ask Gemini for structured findings about the PR bundle."""

import json
import logging
import re
from dataclasses import dataclass

from pydantic import ValidationError

from executor import GenerationError, GenerationRequest, ResilientCallExecutor
from models import Bundle, Findings
from prompts import ANALYZE_PROMPT
from storage import RAW_ANALYSIS_FILE, ArtifactStore

logger = logging.getLogger(__name__)

# Hard cap on the serialized bundle sent to the model (~80k chars)
MAX_BUNDLE_CHARS = 80000

SIZE_SUMMARY = [
    "PR is too large for a reliable automated LLM review.",
    "Please split the PR into smaller chunks (or ensure patches are available).",
]
PARSE_FAILURE_SUMMARY = [
    "Gemini returned output that could not be parsed as JSON.",
    f"Check {RAW_ANALYSIS_FILE} in the workflow artifacts/logs.",
]
RETRY_EXHAUSTED_SUMMARY = [
    "Gemini analyze failed (likely rate limit / quota).",
    "Retry logic exhausted. Consider lowering request size or adding model routing.",
]
MISSING_BUNDLE_SUMMARY = [
    "The PR bundle was not available, so no analysis was run.",
    "Check the bundle step of the workflow.",
]

_FENCE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)


@dataclass
class AnalysisResult:
    findings: Findings
    raw_text: str | None = None
    degraded: bool = False

    def persist(self, store: ArtifactStore) -> None:
        if self.raw_text is not None:
            store.write_text(RAW_ANALYSIS_FILE, self.raw_text)
        store.save_findings(self.findings)


# ---------------------------------------------------------------------------
# Salvage helpers
# ---------------------------------------------------------------------------
def cap_string(text: str, max_chars: int) -> str:
    if not text:
        return ""
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + "\n...(truncated)\n"


def extract_json_object(text: str) -> str | None:
    """Text between the first ``{`` and last ``}`` once fences are removed."""
    if not text:
        return None
    unfenced = _FENCE.sub("", text)
    start = unfenced.find("{")
    end = unfenced.rfind("}")
    if start == -1 or end <= start:
        return None
    candidate = unfenced[start : end + 1]
    try:
        json.loads(candidate)
    except json.JSONDecodeError:
        return None
    return candidate


def _validate(text: str) -> Findings | None:
    try:
        return Findings.model_validate(json.loads(text))
    except (json.JSONDecodeError, ValidationError) as e:
        logger.debug("Findings rejected: %s", e)
        return None


def salvage_findings(text: str | None) -> Findings | None:
    """
    Parse model output as ``Findings``, tolerating fences and chatter.

    Returns ``None`` when nothing usable is found; findings are never
    partially accepted.
    """
    text = (text or "").strip()
    if not text:
        return None

    findings = _validate(text)
    if findings is not None:
        return findings

    candidate = extract_json_object(text)
    if candidate is None:
        return None
    findings = _validate(candidate)
    if findings is not None:
        logger.info("Salvaged JSON from Gemini output.")
    return findings


# ---------------------------------------------------------------------------
# Stage
# ---------------------------------------------------------------------------
class Analyzer:
    """Bundle in, findings out; always returns something usable."""

    def __init__(self, executor: ResilientCallExecutor, context: str = ""):
        self.executor = executor
        self.context = context

    def build_request(self, bundle: Bundle) -> GenerationRequest:
        prompt = ANALYZE_PROMPT.format(
            context=self.context,
            bundle=cap_string(bundle.to_json(), MAX_BUNDLE_CHARS),
        )
        return GenerationRequest(
            prompt=prompt,
            response_mime_type="application/json",
            temperature=0.2,
        )

    def run(self, bundle: Bundle | None, stopped: bool = False) -> AnalysisResult:
        if stopped:
            logger.info("Size guardrail tripped; skipping Gemini analyze.")
            return AnalysisResult(Findings.fallback(SIZE_SUMMARY), degraded=True)
        if bundle is None:
            logger.warning("No PR bundle; writing fallback findings.")
            return AnalysisResult(Findings.fallback(MISSING_BUNDLE_SUMMARY), degraded=True)

        try:
            raw_text = self.executor.generate(self.build_request(bundle))
        except GenerationError as e:
            logger.error("Gemini analyze failed: %s", e)
            return AnalysisResult(Findings.fallback(RETRY_EXHAUSTED_SUMMARY), degraded=True)

        findings = salvage_findings(raw_text)
        if findings is None:
            logger.warning("Gemini output not parseable JSON, writing fallback.")
            return AnalysisResult(
                Findings.fallback(PARSE_FAILURE_SUMMARY),
                raw_text=raw_text,
                degraded=True,
            )

        logger.info(
            "   Findings: %d blocker(s), %d important, %d suggestion(s)",
            len(findings.blockers),
            len(findings.important),
            len(findings.suggestions),
        )
        return AnalysisResult(findings, raw_text=raw_text)


def analyze_from_store(store: ArtifactStore, analyzer: Analyzer) -> AnalysisResult:
    """Run the stage against persisted artifacts and persist its output."""
    if store.stop_requested():
        result = analyzer.run(None, stopped=True)
    else:
        result = analyzer.run(store.load_bundle())
    result.persist(store)
    return result
