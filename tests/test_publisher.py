import pytest

from conftest import FakePlatform, make_bundle, no_sleep
from formatter import fallback_report
from github_client import PlatformError
from models import Findings
from publisher import (
    COMMENT,
    MAX_BODY_CHARS,
    REVIEW,
    TRUNCATION_NOTICE,
    PublishError,
    Publisher,
    publish_from_store,
    resolve_body,
    truncate_body,
)
from storage import FINDINGS_FILE


def publisher_for(platform: FakePlatform) -> Publisher:
    return Publisher(platform, sleep=no_sleep)


def test_posts_formal_review_at_head() -> None:
    platform = FakePlatform()
    result = publisher_for(platform).run("## review", commit_sha="abc123")

    assert result.channel == REVIEW
    assert result.id == 101
    assert platform.reviews == [("## review", "abc123")]
    assert platform.comments == []


def test_review_failures_fall_back_to_comment() -> None:
    platform = FakePlatform(
        review_errors=[
            PlatformError("unavailable", status=503),
            PlatformError("unavailable", status=503),
            PlatformError("unprocessable", status=422),
        ]
    )
    result = publisher_for(platform).run("## review")

    assert result.channel == COMMENT
    assert platform.review_attempts == 3
    assert platform.comments == ["## review"]


def test_transient_review_error_is_retried() -> None:
    platform = FakePlatform(review_errors=[PlatformError("bad gateway", status=502)])
    result = publisher_for(platform).run("## review")

    assert result.channel == REVIEW
    assert platform.review_attempts == 2


def test_review_retries_are_bounded() -> None:
    platform = FakePlatform(review_errors=[PlatformError("busy", status=503)] * 10)
    result = publisher_for(platform).run("## review")
    assert platform.review_attempts == 4
    assert result.channel == COMMENT


def test_both_channels_failing_raises() -> None:
    platform = FakePlatform(
        review_errors=[PlatformError("forbidden", status=403)],
        comment_errors=[PlatformError("forbidden", status=403)],
    )
    with pytest.raises(PublishError):
        publisher_for(platform).run("## review")
    assert platform.comment_attempts == 1


def test_truncate_body() -> None:
    assert truncate_body("short") == "short"
    long_body = "x" * (MAX_BODY_CHARS + 1)
    assert truncate_body(long_body) == "x" * MAX_BODY_CHARS + TRUNCATION_NOTICE


def test_long_report_is_truncated_before_posting() -> None:
    platform = FakePlatform()
    publisher_for(platform).run("y" * (MAX_BODY_CHARS + 100))
    body, _ = platform.reviews[0]
    assert body.endswith(TRUNCATION_NOTICE)


def test_resolve_body_prefers_report(store) -> None:
    store.save_report("## final")
    assert resolve_body(store).startswith("## final")


def test_resolve_body_rebuilds_from_findings(store) -> None:
    bundle = make_bundle()
    findings = Findings.fallback(["Gemini analyze failed (likely rate limit / quota)."])
    store.save_bundle(bundle)
    store.save_findings(findings)
    body = resolve_body(store)
    assert body == fallback_report("review_final.md was not produced.", bundle, findings)


def test_resolve_body_minimal_fallback(store) -> None:
    store.write_text(FINDINGS_FILE, "{ broken")
    body = resolve_body(store)
    assert "(unknown PR title)" in body
    assert "Raw findings JSON present: **Yes**" in body


def test_publish_from_store_uses_bundle_head(store) -> None:
    store.save_bundle(make_bundle())
    store.save_report("## final")
    platform = FakePlatform()
    publish_from_store(store, publisher_for(platform))
    assert platform.reviews[0][1] == "abc123"
