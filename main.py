"""PRWarden command line - one sub-command per workflow step, or ``run``.

Exit codes: 0 whenever a fallback artifact was produced; 1 only when the
bundle cannot be built, the guardrail has no bundle to read, the review
cannot be published, or the configuration is invalid.
"""

import argparse
import logging
import os
import sys

import requests.exceptions

from agent import ReviewPipeline
from analyzer import Analyzer, analyze_from_store
from blockers import highlight_blockers
from bundle import BundleBuilder
from config import Settings, load_repo_context, load_settings
from executor import build_executor
from formatter import Formatter, format_from_store
from github_client import PlatformError, PullRequestClient
from guardrail import apply_guardrail
from publisher import PublishError, Publisher, publish_from_store
from storage import FINDINGS_FILE, LocalArtifactStore

logger = logging.getLogger(__name__)

STAGES = ("bundle", "guardrail", "analyze", "format", "publish", "blockers", "run")

_NEEDS_GITHUB = {"bundle", "publish", "blockers", "run"}


def _platform(settings: Settings) -> PullRequestClient:
    return PullRequestClient(
        settings.repo,
        settings.pr_number,
        settings.github_token,
        base_url=settings.github_api_url,
    )


def run_stage(stage: str, settings: Settings) -> int:
    """Run one stage against the artifact directory and return an exit code."""
    store = LocalArtifactStore(settings.artifact_dir)

    if stage == "bundle":
        try:
            bundle = BundleBuilder(_platform(settings)).run()
        except (PlatformError, requests.exceptions.RequestException) as e:
            logger.error("Could not build review bundle: %s", e)
            return 1
        store.save_bundle(bundle)
        return 0

    if stage == "guardrail":
        bundle = store.load_bundle()
        if bundle is None:
            logger.error("No review bundle to check.")
            return 1
        apply_guardrail(bundle, store)
        return 0

    if stage == "analyze":
        analyzer = Analyzer(
            build_executor(settings), load_repo_context(settings.context_path)
        )
        analyze_from_store(store, analyzer)
        return 0

    if stage == "format":
        format_from_store(store, Formatter(build_executor(settings)))
        return 0

    if stage == "publish":
        try:
            result = publish_from_store(store, Publisher(_platform(settings)))
        except PublishError as e:
            logger.error("❌ %s", e)
            return 1
        logger.info("✅ Published as %s #%d", result.channel, result.id)
        return 0

    if stage == "blockers":
        highlight_blockers(_platform(settings), store.read_text(FINDINGS_FILE))
        return 0

    try:
        final_state = ReviewPipeline.from_settings(settings).run(
            settings.repo, settings.pr_number
        )
    except (PlatformError, requests.exceptions.RequestException, PublishError) as e:
        logger.error("❌ %s", e)
        return 1
    logger.info("✅ Review published via %s", final_state.get("published_via"))
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="prwarden", description="Gemini pull request review pipeline"
    )
    parser.add_argument("stage", choices=STAGES, help="workflow step to run")
    args = parser.parse_args(argv)

    try:
        settings = load_settings(
            os.environ, require_github=args.stage in _NEEDS_GITHUB
        )
    except ValueError as e:
        logger.error("Configuration error: %s", e)
        # the highlighter is best effort and never fails the job
        return 0 if args.stage == "blockers" else 1

    return run_stage(args.stage, settings)


if __name__ == "__main__":
    sys.exit(main())
