"""Provider gateway: one contract over heterogeneous Git hosting backends.

The engine materializes a review unit with the same call sequence on every
backend:

    branch_exists() → ensure_branch() → create_commit()
    pull_request_exists() → ensure_pull_request() → assign() / request_reviewers() / add_labels()

Each backend translates those calls to its native primitives: GitHub builds
blobs, a tree and a commit object before moving the ref; Azure DevOps sends
one push guarded by the expected branch tip; GitLab posts an ordered action
list. Multi-step protocols stay inside the gateway call, so a call either
succeeds as a whole or raises.

Gateways never retry. Errors surface to the engine, which isolates them per
review unit. Existence checks return False only for a definite "not found";
any other failure raises, so a broken check is never mistaken for absence.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from urllib.parse import urlparse

from ice_core.errors import ConfigError
from ice_core.models import CommitInfo, FileChange, PRRequest, RemotePR

_FRACTION = re.compile(r"\.(\d+)")


class GitProvider(ABC):
    name: str = ""

    @abstractmethod
    def branch_exists(self, name: str) -> bool:
        """Return True if branch ``name`` exists on the remote."""

    @abstractmethod
    def ensure_branch(self, name: str, base_ref: str) -> None:
        """Create branch ``name`` pointing at the tip of ``base_ref``."""

    @abstractmethod
    def create_commit(self, branch: str, message: str, changes: list[FileChange]) -> str:
        """Commit ``changes`` on top of ``branch`` and return the new commit id."""

    @abstractmethod
    def pull_request_exists(self, head: str, base: str) -> bool:
        """Return True if an open pull request from ``head`` into ``base`` exists."""

    @abstractmethod
    def ensure_pull_request(self, request: PRRequest) -> RemotePR:
        """Open a pull request for ``request.branch`` into ``request.base_branch``."""

    @abstractmethod
    def assign(self, pr_id: str, assignees: list[str]) -> None: ...

    @abstractmethod
    def request_reviewers(self, pr_id: str, reviewers: list[str]) -> None: ...

    @abstractmethod
    def add_labels(self, pr_id: str, labels: list[str]) -> None: ...

    @abstractmethod
    def add_comment(self, pr_id: str, comment: str) -> None: ...

    @abstractmethod
    def last_modification(self, path: str) -> tuple[datetime, CommitInfo]:
        """Return the timestamp and metadata of the last commit touching ``path``."""


def split_repo_url(url: str) -> tuple[str, str, str]:
    """Split ``https://host/a/b.git`` into ``("https", "host", "a/b")``."""
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        raise ConfigError(f"Invalid repository URL: {url!r}")
    path = parsed.path.strip("/")
    if path.endswith(".git"):
        path = path[: -len(".git")]
    if not path:
        raise ConfigError(f"Repository URL has no path: {url!r}")
    return parsed.scheme, parsed.netloc, path


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 API timestamp (``Z`` suffix allowed) into an aware datetime."""
    value = value.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    # Azure returns 7 fractional digits; fromisoformat accepts at most 6 before 3.11.
    match = _FRACTION.search(value)
    if match:
        digits = match.group(1)[:6].ljust(6, "0")
        value = value[: match.start()] + "." + digits + value[match.end() :]
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
