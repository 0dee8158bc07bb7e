"""Build the bounded PR bundle that every later stage reads."""

import logging
from typing import Protocol

from github_client import ChangedFile, ChangeSet
from models import Bundle, BundleStats, FileDiff, PRInfo

logger = logging.getLogger(__name__)

MAX_FILES = 80  # first N files in API order, not a ranking
MAX_PATCH_CHARS = 12000
TRUNCATION_MARKER = "\n…(truncated)"

# Lock files and common binary images carry no reviewable logic
SKIP_EXTENSIONS = ('.lock', '.png', '.jpg', '.jpeg', '.gif', '.pdf')

SKIP_FILENAMES = {
    'package-lock.json', 'yarn.lock', 'pnpm-lock.yaml',
    'Pipfile.lock', 'poetry.lock', 'composer.lock',
    'Gemfile.lock', 'Cargo.lock', 'uv.lock',
}


class ChangeSource(Protocol):
    def get_change_set(self) -> ChangeSet: ...

    def list_files(self) -> list[ChangedFile]: ...


def should_include_file(file: ChangedFile) -> bool:
    """Removed files, lock files and images are left out of the bundle."""
    if file.status == 'removed':
        return False
    basename = file.filename.split('/')[-1]
    if basename in SKIP_FILENAMES:
        return False
    return not file.filename.lower().endswith(SKIP_EXTENSIONS)


def trim_patch(patch: str | None, max_chars: int = MAX_PATCH_CHARS) -> str:
    """Cap a patch at *max_chars*, appending a marker when cut."""
    if not patch:
        return ""
    if len(patch) <= max_chars:
        return patch
    return patch[:max_chars] + TRUNCATION_MARKER


def build_bundle(change_set: ChangeSet, files: list[ChangedFile]) -> Bundle:
    """
    Turn raw PR data into a ``Bundle``.

    Totals cover every changed file, including the ones filtered out, so the
    size guardrail sees the real size of the change.
    """
    kept = [f for f in files if should_include_file(f)]
    if len(kept) > MAX_FILES:
        logger.info("Capping bundle at %d of %d reviewable files", MAX_FILES, len(kept))
    kept = kept[:MAX_FILES]

    diffs = [
        FileDiff(
            filename=f.filename,
            status=f.status,
            additions=f.additions,
            deletions=f.deletions,
            changes=f.changes,
            patch=trim_patch(f.patch),
            patch_missing=not f.patch,
        )
        for f in kept
    ]

    stats = BundleStats(
        files_changed=len(files),
        files_included=len(diffs),
        total_additions=sum(f.additions or 0 for f in files),
        total_deletions=sum(f.deletions or 0 for f in files),
        patch_missing_files=[d.filename for d in diffs if d.patch_missing],
    )

    pr = PRInfo(
        repo=change_set.repo,
        number=change_set.number,
        title=change_set.title,
        body=change_set.description or "",
        user=change_set.author,
        base=change_set.base_branch,
        head=change_set.head_branch,
        head_sha=change_set.head_sha,
    )
    return Bundle(pr=pr, stats=stats, diffs=diffs)


class BundleBuilder:
    """Fetch PR metadata and files, then bound them into a bundle.

    Platform errors propagate: without a bundle no later stage can run.
    """

    def __init__(self, source: ChangeSource):
        self.source = source

    def run(self) -> Bundle:
        change_set = self.source.get_change_set()
        logger.info("📥 PR #%d: %s", change_set.number, change_set.title)

        files = self.source.list_files()
        bundle = build_bundle(change_set, files)
        logger.info(
            "   Bundled %d of %d file(s) (+%d -%d), %d without patch",
            bundle.stats.files_included,
            bundle.stats.files_changed,
            bundle.stats.total_additions,
            bundle.stats.total_deletions,
            len(bundle.stats.patch_missing_files),
        )
        return bundle
