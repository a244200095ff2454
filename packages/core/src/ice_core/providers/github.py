"""GitHub gateway: object-graph backend.

GitHub has no "apply these file changes" primitive. A commit is built from
the object graph in four steps:

    1. create a blob per changed file
    2. create a tree from those blobs on top of the parent commit's tree
    3. create a commit object pointing at the tree, parented on the branch tip
    4. advance the branch ref to the new commit (non-forced)

Steps 1-3 only create unreachable objects, so a failure there leaves the
branch untouched. The ref moves in step 4 or not at all, which makes the
whole sequence behave as a single gateway call.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from github import Github, GithubException, InputGitTreeElement

from ice_core.errors import ProviderError
from ice_core.models import CommitInfo, FileChange, PRRequest, RemotePR
from ice_core.providers.base import GitProvider, split_repo_url

_FILE_MODE = "100644"


class GitHubProvider(GitProvider):
    name = "github"

    def __init__(self, repo_url: str, token: str, repo_obj=None, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger(__name__)
        if repo_obj is not None:
            self.repo = repo_obj
            return
        scheme, host, full_name = split_repo_url(repo_url)
        if host in ("github.com", "www.github.com"):
            client = Github(token)
        else:
            # GitHub Enterprise Server serves the REST API under /api/v3.
            client = Github(token, base_url=f"{scheme}://{host}/api/v3")
        try:
            self.repo = client.get_repo(full_name)
        except GithubException as e:
            raise ProviderError(f"Could not open repository {full_name}: {e}", status=e.status) from e

    # ------------------------------------------------------------------ #
    # Branches and commits                                                #
    # ------------------------------------------------------------------ #

    def branch_exists(self, name: str) -> bool:
        try:
            self.repo.get_branch(name)
        except GithubException as e:
            if e.status == 404:
                return False
            raise ProviderError(f"Could not check branch {name}: {e}", status=e.status) from e
        return True

    def ensure_branch(self, name: str, base_ref: str) -> None:
        try:
            base = self.repo.get_git_ref(f"heads/{base_ref}")
            self.repo.create_git_ref(ref=f"refs/heads/{name}", sha=base.object.sha)
        except GithubException as e:
            raise ProviderError(f"Could not create branch {name} from {base_ref}: {e}", status=e.status) from e
        self.logger.debug("Created branch %s from %s (%s)", name, base_ref, base.object.sha[:7])

    def create_commit(self, branch: str, message: str, changes: list[FileChange]) -> str:
        step = "read branch ref"
        try:
            ref = self.repo.get_git_ref(f"heads/{branch}")
            parent = self.repo.get_git_commit(ref.object.sha)

            step = "create blobs"
            elements = []
            for change in changes:
                if change.action == "delete":
                    elements.append(InputGitTreeElement(change.path, _FILE_MODE, "blob", sha=None))
                    continue
                blob = self.repo.create_git_blob(change.content, "utf-8")
                elements.append(InputGitTreeElement(change.path, _FILE_MODE, "blob", sha=blob.sha))

            step = "create tree"
            tree = self.repo.create_git_tree(elements, base_tree=parent.tree)

            step = "create commit"
            commit = self.repo.create_git_commit(message, tree, [parent])

            step = "update ref"
            ref.edit(commit.sha, force=False)
        except GithubException as e:
            raise ProviderError(f"Commit to {branch} failed at step '{step}': {e}", status=e.status) from e

        self.logger.debug("Committed %d change(s) to %s as %s", len(changes), branch, commit.sha[:7])
        return commit.sha

    # ------------------------------------------------------------------ #
    # Pull requests                                                       #
    # ------------------------------------------------------------------ #

    def pull_request_exists(self, head: str, base: str) -> bool:
        try:
            pulls = self.repo.get_pulls(state="open", head=f"{self.repo.owner.login}:{head}", base=base)
            return pulls.totalCount > 0
        except GithubException as e:
            raise ProviderError(f"Could not list pull requests for {head}: {e}", status=e.status) from e

    def ensure_pull_request(self, request: PRRequest) -> RemotePR:
        try:
            pr = self.repo.create_pull(
                title=request.title,
                body=request.description,
                head=request.branch,
                base=request.base_branch,
            )
        except GithubException as e:
            raise ProviderError(f"Could not open pull request for {request.branch}: {e}", status=e.status) from e
        created = pr.created_at or datetime.now(timezone.utc)
        if created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        return RemotePR(id=str(pr.number), url=pr.html_url, number=pr.number, state=pr.state, created_at=created)

    def assign(self, pr_id: str, assignees: list[str]) -> None:
        if assignees:
            self._pull(pr_id).add_to_assignees(*assignees)

    def request_reviewers(self, pr_id: str, reviewers: list[str]) -> None:
        if reviewers:
            self._pull(pr_id).create_review_request(reviewers=list(reviewers))

    def add_labels(self, pr_id: str, labels: list[str]) -> None:
        if labels:
            self._pull(pr_id).add_to_labels(*labels)

    def add_comment(self, pr_id: str, comment: str) -> None:
        self._pull(pr_id).create_issue_comment(comment)

    def _pull(self, pr_id: str):
        try:
            return self.repo.get_pull(int(pr_id))
        except GithubException as e:
            raise ProviderError(f"Pull request #{pr_id} not found: {e}", status=e.status) from e

    # ------------------------------------------------------------------ #
    # History                                                             #
    # ------------------------------------------------------------------ #

    def last_modification(self, path: str) -> tuple[datetime, CommitInfo]:
        try:
            latest = next(iter(self.repo.get_commits(path=path)), None)
        except GithubException as e:
            raise ProviderError(f"Could not list commits for {path}: {e}", status=e.status) from e
        if latest is None:
            raise ProviderError(f"No commits found for file: {path}")
        git_commit = latest.commit
        when = git_commit.author.date
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        info = CommitInfo(
            hash=latest.sha,
            author=git_commit.author.name or "",
            email=git_commit.author.email or "",
            message=git_commit.message or "",
        )
        return when, info
