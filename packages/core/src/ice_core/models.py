"""Data models shared by every pipeline stage.

Records produced by the scanner are frozen: once a FileRecord or Policy
enters the pipeline it is never mutated, so stages can run on worker
threads without copying.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

BRANCH_PREFIX = "recert/"

# Characters git-check-ref-format rejects inside a ref name.
_INVALID_REF_CHARS = re.compile(r"[\s~^:?*\[\\]+|@\{")
_DOT_RUN = re.compile(r"\.{2,}")


class Priority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {Priority.LOW: 0, Priority.MEDIUM: 1, Priority.HIGH: 2, Priority.CRITICAL: 3}


@dataclass(frozen=True)
class CommitInfo:
    hash: str = ""
    author: str = ""
    email: str = ""
    message: str = ""


@dataclass(frozen=True)
class FileRecord:
    """A candidate file as produced by the scanner and enriched with history.

    ``last_modified`` is None when the history lookup failed; the checker
    treats such files as maximally stale rather than dropping them.
    """

    path: str
    size: int = 0
    last_modified: datetime | None = None
    commit: CommitInfo = field(default_factory=CommitInfo)


@dataclass(frozen=True)
class Policy:
    name: str
    paths: tuple[str, ...]
    recertification_days: int
    exclude: tuple[str, ...] = ()
    enabled: bool = True
    description: str = ""
    decorator: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> Policy:
        return cls(
            name=data["name"],
            paths=tuple(data.get("paths") or ()),
            recertification_days=int(data["recertification_days"]),
            exclude=tuple(data.get("exclude") or ()),
            enabled=bool(data.get("enabled", True)),
            description=data.get("description") or "",
            decorator=data.get("decorator") or "",
        )


@dataclass(frozen=True)
class Verdict:
    file: FileRecord
    policy_name: str
    days_since: int
    threshold: int
    priority: Priority
    needs_recertification: bool
    next_due_date: datetime


@dataclass
class ReviewUnit:
    """A set of stale files that is committed and reviewed as one pull request."""

    id: str
    strategy: str
    verdicts: list[Verdict] = field(default_factory=list)
    assignees: list[str] = field(default_factory=list)
    reviewers: list[str] = field(default_factory=list)

    @property
    def branch_name(self) -> str:
        return branch_name_for(self.id)

    @property
    def paths(self) -> list[str]:
        return [v.file.path for v in self.verdicts]

    @property
    def priority(self) -> Priority:
        if not self.verdicts:
            return Priority.LOW
        return max((v.priority for v in self.verdicts), key=lambda p: p.rank)


def branch_name_for(unit_id: str) -> str:
    """Map a review unit id to its branch name.

    Pure function of the id: the same logical unit lands on the same branch
    on every run, which is what the existence checks rely on.
    """
    name = _INVALID_REF_CHARS.sub("-", unit_id)
    name = _DOT_RUN.sub(".", name)
    name = name.strip("/.").replace("//", "/")
    if name.endswith(".lock"):
        name = name[: -len(".lock")] + "-lock"
    if name != unit_id:
        # Sanitizing is lossy; the digest keeps distinct ids on distinct branches.
        name = f"{name}-{hashlib.sha1(unit_id.encode('utf-8')).hexdigest()[:8]}"
    return BRANCH_PREFIX + name


@dataclass
class AssignmentOutcome:
    assignees: list[str] = field(default_factory=list)
    reviewers: list[str] = field(default_factory=list)
    team: str = ""
    priority: str = ""


@dataclass(frozen=True)
class FileChange:
    path: str
    content: str = ""
    action: str = "update"  # "create" | "update" | "delete"


@dataclass
class PRRequest:
    title: str
    description: str
    branch: str
    base_branch: str
    changes: list[FileChange] = field(default_factory=list)
    commit_message: str = "Trigger recertification"
    assignees: list[str] = field(default_factory=list)
    reviewers: list[str] = field(default_factory=list)
    labels: list[str] = field(default_factory=list)


@dataclass
class RemotePR:
    id: str
    url: str
    number: int
    state: str = "open"
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class UnitResult:
    unit_id: str
    branch: str
    status: str  # "created" | "exists" | "dry_run" | "failed" | "skipped"
    files: int = 0
    pr_url: str = ""
    error: str | None = None


@dataclass
class RunSummary:
    run_id: str
    scanned: int = 0
    evaluated: int = 0
    stale: int = 0
    results: list[UnitResult] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return sum(1 for r in self.results if r.status in ("created", "exists", "dry_run"))

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.status == "failed")

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.status == "skipped")
