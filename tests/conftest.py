"""Shared fakes: no test talks to GitHub or Gemini."""

import pytest

from executor import ResilientCallExecutor
from github_client import ChangedFile, ChangeSet
from models import Bundle, BundleStats, FileDiff, PRInfo
from storage import MemoryArtifactStore


def no_sleep(_seconds: float) -> None:
    return None


class FakeGenerator:
    """Scripted generator: per model, a list of strings or exceptions.

    The last entry of a script repeats once the others are used up.
    """

    def __init__(self, script: dict[str, list]):
        self.script = {model: list(items) for model, items in script.items()}
        self.calls: list[tuple[str, object]] = []

    def generate(self, model, request):
        self.calls.append((model, request))
        queue = self.script[model]
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item

    def calls_for(self, model: str) -> int:
        return sum(1 for called, _ in self.calls if called == model)


class FakePlatform:
    """In-memory pull request: records posts, fails on demand."""

    def __init__(self, change_set=None, files=None, review_errors=None, comment_errors=None):
        self.change_set = change_set or make_change_set()
        self.files = files or []
        self.review_errors = list(review_errors or [])
        self.comment_errors = list(comment_errors or [])
        self.review_attempts = 0
        self.comment_attempts = 0
        self.reviews: list[tuple[str, str | None]] = []
        self.comments: list[str] = []

    def get_change_set(self):
        return self.change_set

    def list_files(self):
        return list(self.files)

    def create_review(self, body, commit_sha=None):
        self.review_attempts += 1
        if self.review_errors:
            raise self.review_errors.pop(0)
        self.reviews.append((body, commit_sha))
        return 101

    def create_comment(self, body):
        self.comment_attempts += 1
        if self.comment_errors:
            raise self.comment_errors.pop(0)
        self.comments.append(body)
        return 202


def make_change_set(**overrides) -> ChangeSet:
    values = dict(
        repo="octo-org/service",
        number=7,
        title="Add averaging helper",
        author="dev",
        base_branch="main",
        head_branch="feature/avg",
        head_sha="abc123",
        description="Adds stats.calculate_average",
    )
    values.update(overrides)
    return ChangeSet(**values)


def make_file(name: str, status: str = "modified", additions: int = 10, deletions: int = 10, patch: str | None = "@@ -1 +1 @@\n-a\n+b") -> ChangedFile:
    return ChangedFile(
        filename=name,
        status=status,
        additions=additions,
        deletions=deletions,
        changes=additions + deletions,
        patch=patch,
    )


def make_bundle(files_included: int = 3, additions: int = 50, deletions: int = 10, missing: list[str] | None = None) -> Bundle:
    diffs = [FileDiff(filename=f"src/mod_{i}.py", status="modified", patch="+x") for i in range(files_included)]
    return Bundle(
        pr=PRInfo(repo="octo-org/service", number=7, title="Add averaging helper", head_sha="abc123"),
        stats=BundleStats(
            files_changed=files_included,
            files_included=files_included,
            total_additions=additions,
            total_deletions=deletions,
            patch_missing_files=list(missing or []),
        ),
        diffs=diffs,
    )


@pytest.fixture
def store() -> MemoryArtifactStore:
    return MemoryArtifactStore()


@pytest.fixture
def make_executor():
    def _make(script: dict[str, list], policy=None) -> tuple[ResilientCallExecutor, FakeGenerator]:
        generator = FakeGenerator(script)
        kwargs = {"policy": policy} if policy else {}
        executor = ResilientCallExecutor(
            generator, "primary-model", "fallback-model", sleep=no_sleep, **kwargs
        )
        return executor, generator

    return _make
