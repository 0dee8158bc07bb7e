"""End-to-end runs of the LangGraph pipeline against fakes."""

import json

import pytest
from google.api_core.exceptions import TooManyRequests

from agent import ReviewPipeline
from analyzer import PARSE_FAILURE_SUMMARY, SIZE_SUMMARY
from conftest import FakePlatform, make_file, no_sleep
from github_client import PlatformError
from mock_data import MOCK_REPORT_RESPONSE
from prompts import MERGE_RECOMMENDATION_HEADER
from publisher import COMMENT, REVIEW, PublishError, Publisher
from storage import BUNDLE_FILE, FINDINGS_FILE, RAW_ANALYSIS_FILE, REPORT_FILE, STOP_FILE


def small_pr(**kwargs) -> FakePlatform:
    # 10 files x 20 changed lines = 200 lines
    return FakePlatform(files=[make_file(f"src/m{i}.py") for i in range(10)], **kwargs)


def run(platform, executor, store) -> dict:
    pipeline = ReviewPipeline(platform, executor, store)
    pipeline.publisher = Publisher(platform, sleep=no_sleep)
    return pipeline.run("octo-org/service", 7)


def test_malformed_analysis_still_publishes_review(make_executor, store) -> None:
    executor, generator = make_executor({"primary-model": ["this is not json", MOCK_REPORT_RESPONSE]})
    platform = small_pr()
    state = run(platform, executor, store)

    assert state["analysis_degraded"] is True
    assert state["findings"].summary == PARSE_FAILURE_SUMMARY
    assert state["published_via"] == REVIEW
    assert "✅ Safe to merge. No blockers or important findings." in state["report"]
    assert platform.comments == []
    [(body, sha)] = platform.reviews
    assert sha == "abc123"
    assert body.count(MERGE_RECOMMENDATION_HEADER) == 1
    for name in (BUNDLE_FILE, FINDINGS_FILE, RAW_ANALYSIS_FILE, REPORT_FILE):
        assert store.exists(name)
    assert not store.exists(STOP_FILE)


def test_oversized_pr_skips_model_calls(make_executor, store) -> None:
    executor, generator = make_executor({"primary-model": [MOCK_REPORT_RESPONSE]})
    platform = FakePlatform(files=[make_file(f"src/m{i}.py") for i in range(61)])
    state = run(platform, executor, store)

    assert generator.calls == []
    assert state["verdict"].stop
    assert store.exists(STOP_FILE)
    assert state["findings"].summary == SIZE_SUMMARY
    assert "PR is too large" in platform.reviews[0][0]


def test_blockers_are_highlighted(make_executor, store) -> None:
    findings = {"blockers": [{"title": "Drops table", "details": "d", "files": ["db.py"], "suggested_fix": "f"}]}
    executor, _ = make_executor({"primary-model": [json.dumps(findings), MOCK_REPORT_RESPONSE]})
    platform = small_pr()
    state = run(platform, executor, store)

    assert state["blockers_highlighted"] is True
    assert "Drops table" in platform.comments[0]
    assert "❌ Do not merge. Blockers found (1)." in platform.reviews[0][0]


def test_rate_limited_everywhere_still_posts_explanation(make_executor, store) -> None:
    executor, _ = make_executor(
        {"primary-model": [TooManyRequests("quota")], "fallback-model": [TooManyRequests("quota")]}
    )
    platform = small_pr()
    state = run(platform, executor, store)

    assert state["report_degraded"] is True
    assert "Gemini analyze failed" in platform.reviews[0][0]


def test_review_failure_posts_comment(make_executor, store) -> None:
    executor, _ = make_executor({"primary-model": ["{}", MOCK_REPORT_RESPONSE]})
    platform = small_pr(
        review_errors=[PlatformError("busy", status=503), PlatformError("busy", status=503), PlatformError("nope", status=422)]
    )
    state = run(platform, executor, store)

    assert state["published_via"] == COMMENT
    assert len(platform.comments) == 1


def test_publish_failure_ends_run(make_executor, store) -> None:
    executor, _ = make_executor({"primary-model": ["{}", MOCK_REPORT_RESPONSE]})
    platform = small_pr(
        review_errors=[PlatformError("forbidden", status=403)],
        comment_errors=[PlatformError("forbidden", status=403)],
    )
    with pytest.raises(PublishError):
        run(platform, executor, store)


def test_bundle_failure_aborts_before_analysis(make_executor, store) -> None:
    class Missing(FakePlatform):
        def get_change_set(self):
            raise PlatformError("PR #7 not found in octo-org/service", status=404)

    executor, generator = make_executor({"primary-model": ["{}"]})
    with pytest.raises(PlatformError):
        run(Missing(), executor, store)
    assert generator.calls == []
    assert not store.exists(BUNDLE_FILE)
