"""GitHub API client for PR operations."""

import os
import logging
import functools
from dataclasses import dataclass

import requests.exceptions
from github import Auth, Consts, Github
from github.GithubException import GithubException

from config import validate_repo, with_retry

logger = logging.getLogger(__name__)

# Statuses worth retrying on write calls
RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})

_TRANSPORT_ERRORS = (
    requests.exceptions.ConnectionError,
    requests.exceptions.Timeout,
)


class PlatformError(ValueError):
    """A GitHub API call failed; ``status`` is the HTTP status if known."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status

    @property
    def retryable(self) -> bool:
        return self.status in RETRYABLE_STATUSES


def _wrap(e: GithubException, action: str) -> PlatformError:
    data = e.data if isinstance(e.data, dict) else {}
    message = data.get("message", str(e))
    for error in data.get("errors", []) or []:
        logger.error("  - %s", error)
    return PlatformError(f"{action}: {message}", status=e.status)


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------
@dataclass
class ChangeSet:
    """Pull Request metadata."""

    repo: str
    number: int
    title: str
    author: str | None
    base_branch: str
    head_branch: str
    head_sha: str
    description: str | None


@dataclass
class ChangedFile:
    """A file changed in a Pull Request."""

    filename: str
    status: str  # added, removed, modified, renamed
    additions: int  # lines added
    deletions: int  # lines deleted
    changes: int  # total lines changed
    patch: str | None  # None for binary or oversized files


# ---------------------------------------------------------------------------
# Cached GitHub client
# ---------------------------------------------------------------------------
@functools.lru_cache(maxsize=4)
def get_github_client(
    token: str | None = None, base_url: str = Consts.DEFAULT_BASE_URL
) -> Github:
    """
    Create or return a cached GitHub client.

    PyGithub's own retry layer is switched off: write calls are retried by
    the publish policy, which needs the real HTTP status of each failure.
    """
    token = token or os.getenv("GITHUB_TOKEN")
    if not token:
        raise ValueError(
            "GITHUB_TOKEN not found. Set it in .env file.\n"
            "Get your token at: https://github.com/settings/tokens"
        )
    return Github(auth=Auth.Token(token), base_url=base_url, retry=None)


# ---------------------------------------------------------------------------
# Read operations
# ---------------------------------------------------------------------------
@with_retry(max_retries=3, base_delay=1.0, retryable=_TRANSPORT_ERRORS)
def fetch_change_set(client: Github, repo: str, pr_number: int) -> ChangeSet:
    """
    Fetch PR metadata from GitHub.

    Raises:
        PlatformError: If the PR is missing or the API refuses the call
    """
    repo = validate_repo(repo)

    try:
        pr = client.get_repo(repo).get_pull(pr_number)
        return ChangeSet(
            repo=repo,
            number=pr.number,
            title=pr.title,
            author=pr.user.login if pr.user else None,
            base_branch=pr.base.ref,
            head_branch=pr.head.ref,
            head_sha=pr.head.sha,
            description=pr.body,
        )
    except GithubException as e:
        if e.status == 404:
            raise PlatformError(
                f"PR #{pr_number} not found in {repo}", status=404
            ) from e
        raise _wrap(e, "GitHub API error") from e


@with_retry(max_retries=3, base_delay=1.0, retryable=_TRANSPORT_ERRORS)
def fetch_changed_files(client: Github, repo: str, pr_number: int) -> list[ChangedFile]:
    """
    Fetch every file changed in a PR.

    PyGithub's ``get_files`` paginates transparently (100 per page).
    """
    repo = validate_repo(repo)

    try:
        pr = client.get_repo(repo).get_pull(pr_number)
        return [
            ChangedFile(
                filename=file.filename,
                status=file.status,
                additions=file.additions,
                deletions=file.deletions,
                changes=file.changes,
                patch=file.patch,
            )
            for file in pr.get_files()
        ]
    except GithubException as e:
        if e.status == 404:
            raise PlatformError(
                f"PR #{pr_number} not found in {repo}", status=404
            ) from e
        raise _wrap(e, "GitHub API error") from e


# ---------------------------------------------------------------------------
# Write operations
# ---------------------------------------------------------------------------
def post_pr_comment(client: Github, repo: str, pr_number: int, body: str) -> int:
    """
    Post a general comment on a PR (not attached to a specific line).

    Returns:
        Comment ID
    """
    repo = validate_repo(repo)

    try:
        pr = client.get_repo(repo).get_pull(pr_number)
        comment = pr.create_issue_comment(body)
        logger.info("Posted comment %d on PR #%d", comment.id, pr_number)
        return comment.id
    except GithubException as e:
        raise _wrap(e, "Failed to post comment") from e


def post_review(
    client: Github,
    repo: str,
    pr_number: int,
    body: str,
    commit_sha: str | None = None,
    event: str = "COMMENT",
) -> int:
    """
    Post a review on the PR, pinned to *commit_sha* (defaults to head).

    Returns:
        Review ID
    """
    repo = validate_repo(repo)

    try:
        repository = client.get_repo(repo)
        pr = repository.get_pull(pr_number)
        commit = repository.get_commit(commit_sha or pr.head.sha)

        review = pr.create_review(commit=commit, body=body, event=event)
        logger.info("Posted review %d on PR #%d", review.id, pr_number)
        return review.id
    except GithubException as e:
        raise _wrap(e, "Failed to post review") from e


# ---------------------------------------------------------------------------
# Bound client used by the pipeline stages
# ---------------------------------------------------------------------------
class PullRequestClient:
    """The handful of GitHub operations the pipeline needs, for one PR."""

    def __init__(
        self,
        repo: str,
        pr_number: int,
        token: str | None = None,
        base_url: str = Consts.DEFAULT_BASE_URL,
    ):
        self.repo = validate_repo(repo)
        self.pr_number = pr_number
        self._token = token
        self._base_url = base_url

    @property
    def client(self) -> Github:
        return get_github_client(self._token, self._base_url)

    def get_change_set(self) -> ChangeSet:
        return fetch_change_set(self.client, self.repo, self.pr_number)

    def list_files(self) -> list[ChangedFile]:
        return fetch_changed_files(self.client, self.repo, self.pr_number)

    def create_review(self, body: str, commit_sha: str | None = None) -> int:
        return post_review(self.client, self.repo, self.pr_number, body, commit_sha)

    def create_comment(self, body: str) -> int:
        return post_pr_comment(self.client, self.repo, self.pr_number, body)
