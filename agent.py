"""
PRWarden Agent - LangGraph-based review pipeline

The five stages run strictly in sequence as graph nodes:
bundle -> guardrail -> analyze -> format -> publish, with the blocker
highlighter branching off after analysis. Typed values flow through the
graph state; every node also persists its artifact so a failed run can be
inspected, or a single stage re-run, from the artifact directory.
"""

import logging
from dataclasses import dataclass

from langgraph.graph import END, START, StateGraph

import config as _config  # noqa: F401 - ensures env & logging are initialised
from analyzer import Analyzer
from blockers import highlight_blockers as post_blocker_highlights
from bundle import BundleBuilder
from config import Settings, load_repo_context
from executor import ResilientCallExecutor, build_executor
from formatter import Formatter
from github_client import PullRequestClient
from guardrail import GuardrailVerdict, apply_guardrail
from models import Bundle, Findings
from publisher import Publisher
from storage import FINDINGS_FILE, ArtifactStore, LocalArtifactStore

logger = logging.getLogger(__name__)


# =============================================================================
# STATE DEFINITION
# =============================================================================
@dataclass
class ReviewState:
    """
    State that flows through the review graph.

    Each node reads what its predecessors produced and returns updates to
    its own fields only.
    """

    # Input (required)
    repo: str
    pr_number: int

    # Stage outputs
    bundle: Bundle | None = None
    verdict: GuardrailVerdict | None = None
    findings: Findings | None = None
    analysis_degraded: bool = False
    report: str = ""
    report_degraded: bool = False

    # Output
    blockers_highlighted: bool = False
    published_via: str | None = None  # "review" or "comment"
    publication_id: int | None = None


def _get(state, key: str):
    # LangGraph may pass state as dict or dataclass
    return state.get(key) if isinstance(state, dict) else getattr(state, key)


# =============================================================================
# PIPELINE
# =============================================================================
class ReviewPipeline:
    """Holds the stage collaborators and exposes them as graph nodes."""

    def __init__(
        self,
        platform: PullRequestClient,
        executor: ResilientCallExecutor,
        store: ArtifactStore,
        context: str = "",
        highlight: bool = True,
    ):
        self.platform = platform
        self.store = store
        self.highlight = highlight
        self.builder = BundleBuilder(platform)
        self.analyzer = Analyzer(executor, context)
        self.formatter = Formatter(executor)
        self.publisher = Publisher(platform)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ReviewPipeline":
        return cls(
            platform=PullRequestClient(
                settings.repo,
                settings.pr_number,
                settings.github_token,
                base_url=settings.github_api_url,
            ),
            executor=build_executor(settings),
            store=LocalArtifactStore(settings.artifact_dir),
            context=load_repo_context(settings.context_path),
        )

    # -- nodes ---------------------------------------------------------------
    def build_bundle(self, state: ReviewState) -> dict:
        """
        Node 1: Fetch the PR and write the bundle.

        Platform errors are not caught: without a bundle the run is over.
        """
        logger.info("📥 Fetching PR #%d from %s...", state.pr_number, state.repo)
        bundle = self.builder.run()
        self.store.save_bundle(bundle)
        return {"bundle": bundle}

    def check_guardrail(self, state: ReviewState) -> dict:
        """Node 2: Decide whether the PR is small enough to analyse."""
        return {"verdict": apply_guardrail(state.bundle, self.store)}

    def analyze(self, state: ReviewState) -> dict:
        """Node 3: Findings from Gemini, or a labelled fallback."""
        logger.info("🔍 Analysing PR bundle...")
        result = self.analyzer.run(state.bundle, stopped=state.verdict.stop)
        result.persist(self.store)
        return {"findings": result.findings, "analysis_degraded": result.degraded}

    def highlight_blockers(self, state: ReviewState) -> dict:
        """Side node: one comment listing the blockers, best effort."""
        posted = post_blocker_highlights(
            self.platform, self.store.read_text(FINDINGS_FILE)
        )
        return {"blockers_highlighted": posted}

    def format_review(self, state: ReviewState) -> dict:
        """Node 4: Markdown report with computed verdict and coverage notes."""
        logger.info("📝 Formatting review...")
        report = self.formatter.run(
            state.bundle, state.findings, stopped=state.verdict.stop
        )
        self.store.save_report(report.body)
        return {"report": report.body, "report_degraded": report.degraded}

    def publish_review(self, state: ReviewState) -> dict:
        """Node 5: Post the report; ``PublishError`` ends the run."""
        result = self.publisher.run(state.report, commit_sha=state.bundle.pr.head_sha)
        logger.info("   ✅ Published as %s #%d", result.channel, result.id)
        return {"published_via": result.channel, "publication_id": result.id}

    # -- decisions -----------------------------------------------------------
    def should_highlight_blockers(self, state: ReviewState) -> str:
        """
        Decide whether to post the blocker highlight comment.

        Returns:
            "highlight_blockers" if the findings contain blockers
            "format_review" otherwise
        """
        findings = _get(state, "findings")
        if self.highlight and findings is not None and findings.blockers:
            logger.info(
                "🔀 Decision: %d blocker(s) → highlighting", len(findings.blockers)
            )
            return "highlight_blockers"
        return "format_review"

    # -- graph ---------------------------------------------------------------
    def build_graph(self) -> StateGraph:
        """Build the sequential review workflow graph."""
        graph = StateGraph(ReviewState)

        graph.add_node("build_bundle", self.build_bundle)
        graph.add_node("check_guardrail", self.check_guardrail)
        graph.add_node("analyze", self.analyze)
        graph.add_node("highlight_blockers", self.highlight_blockers)
        graph.add_node("format_review", self.format_review)
        graph.add_node("publish_review", self.publish_review)

        graph.add_edge(START, "build_bundle")
        graph.add_edge("build_bundle", "check_guardrail")
        graph.add_edge("check_guardrail", "analyze")

        graph.add_conditional_edges(
            "analyze",
            self.should_highlight_blockers,
            {
                "highlight_blockers": "highlight_blockers",
                "format_review": "format_review",
            },
        )
        graph.add_edge("highlight_blockers", "format_review")

        graph.add_edge("format_review", "publish_review")
        graph.add_edge("publish_review", END)

        return graph

    def run(self, repo: str, pr_number: int) -> dict:
        """Run the whole pipeline once and return the final state."""
        agent = self.build_graph().compile()
        return agent.invoke(ReviewState(repo=repo, pr_number=pr_number))
