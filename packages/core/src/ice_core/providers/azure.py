"""Azure DevOps gateway: push transaction backend.

A commit is a single ``pushes`` call. The push names the branch tip it
expects (``refUpdates[].oldObjectId``) and embeds one change descriptor per
file; Azure rejects it with 409 if the tip moved in the meantime, which
surfaces as ProviderConflictError.

Azure DevOps has no assignee concept on pull requests: ``assign`` adds the
assignees as reviewers. Reviewer names must be identity ids (or unique
names the organisation accepts in the reviewers endpoint).
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

import requests

from ice_core.errors import ConfigError, ProviderError
from ice_core.models import CommitInfo, FileChange, PRRequest, RemotePR
from ice_core.providers.base import parse_timestamp, split_repo_url
from ice_core.providers.rest import DEFAULT_TIMEOUT, RestProvider

API_VERSION = "7.0"
_ZERO_SHA = "0" * 40
_CHANGE_TYPES = {"create": "add", "update": "edit", "delete": "delete"}


def parse_azure_url(url: str) -> tuple[str, str, str]:
    """Return ``(organization, project, repository)`` from an Azure Repos clone URL.

    Supports ``https://dev.azure.com/{org}/{project}/_git/{repo}`` and
    ``https://{org}.visualstudio.com/{project}/_git/{repo}``.
    """
    _, host, path = split_repo_url(url)
    parts = path.split("/")
    if "_git" not in parts:
        raise ConfigError(f"Unsupported Azure DevOps URL format: {url}")
    idx = parts.index("_git")
    if idx + 1 >= len(parts):
        raise ConfigError(f"Azure DevOps URL has no repository: {url}")
    repo = parts[idx + 1]
    if host == "dev.azure.com":
        if idx != 2:
            raise ConfigError(f"Invalid Azure DevOps URL: {url}")
        return parts[0], parts[1], repo
    if host.endswith(".visualstudio.com"):
        if idx != 1:
            raise ConfigError(f"Invalid Azure DevOps URL: {url}")
        return host.split(".", 1)[0], parts[0], repo
    raise ConfigError(f"Unsupported Azure DevOps URL format: {url}")


class AzureDevOpsProvider(RestProvider):
    name = "azure"

    def __init__(
        self,
        repo_url: str,
        token: str,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        logger: logging.Logger | None = None,
    ):
        self.org, self.project, self.repo = parse_azure_url(repo_url)
        super().__init__(
            f"https://dev.azure.com/{self.org}/{self.project}/_apis/git/repositories/{self.repo}",
            session=session,
            timeout=timeout,
            logger=logger,
        )
        # PATs authenticate as basic auth with an empty user name.
        self.session.auth = ("", token)
        self.session.headers.update({"Content-Type": "application/json"})

    def _params(self, **extra) -> dict:
        return {"api-version": API_VERSION, **extra}

    def _branch_tip(self, name: str) -> str | None:
        # The refs filter is a prefix match, so compare the full ref name.
        result = self._request("GET", "refs", params=self._params(filter=f"heads/{name}")) or {}
        for ref in result.get("value", []):
            if ref.get("name") == f"refs/heads/{name}":
                return ref.get("objectId")
        return None

    def branch_exists(self, name: str) -> bool:
        return self._branch_tip(name) is not None

    def ensure_branch(self, name: str, base_ref: str) -> None:
        base_sha = self._branch_tip(base_ref)
        if base_sha is None:
            raise ProviderError(f"azure: base ref {base_ref} not found")
        body = [{"name": f"refs/heads/{name}", "oldObjectId": _ZERO_SHA, "newObjectId": base_sha}]
        result = self._request("POST", "refs", params=self._params(), json=body) or {}
        for update in result.get("value", []):
            if update.get("success") is False:
                raise ProviderError(f"azure: could not create branch {name}: {update.get('updateStatus')}")
        self.logger.debug("Created branch %s from %s (%s)", name, base_ref, base_sha[:7])

    def create_commit(self, branch: str, message: str, changes: list[FileChange]) -> str:
        tip = self._branch_tip(branch)
        if tip is None:
            raise ProviderError(f"azure: branch {branch} not found")

        descriptors = []
        for change in changes:
            descriptor = {"changeType": _CHANGE_TYPES[change.action], "item": {"path": "/" + change.path}}
            if change.action != "delete":
                descriptor["newContent"] = {"content": change.content, "contentType": "rawtext"}
            descriptors.append(descriptor)

        body = {
            "refUpdates": [{"name": f"refs/heads/{branch}", "oldObjectId": tip}],
            "commits": [{"comment": message, "changes": descriptors}],
        }
        result = self._request("POST", "pushes", params=self._params(), json=body) or {}
        commits = result.get("commits") or []
        if not commits:
            raise ProviderError(f"azure: push to {branch} created no commits")
        return commits[0]["commitId"]

    def pull_request_exists(self, head: str, base: str) -> bool:
        params = self._params(
            **{
                "searchCriteria.sourceRefName": f"refs/heads/{head}",
                "searchCriteria.targetRefName": f"refs/heads/{base}",
                "searchCriteria.status": "active",
            }
        )
        result = self._request("GET", "pullrequests", params=params) or {}
        return int(result.get("count", len(result.get("value", [])))) > 0

    def ensure_pull_request(self, request: PRRequest) -> RemotePR:
        body = {
            "sourceRefName": f"refs/heads/{request.branch}",
            "targetRefName": f"refs/heads/{request.base_branch}",
            "title": request.title,
            "description": request.description,
        }
        result = self._request("POST", "pullrequests", params=self._params(), json=body) or {}
        pr_id = int(result["pullRequestId"])
        created = result.get("creationDate")
        return RemotePR(
            id=str(pr_id),
            url=f"https://dev.azure.com/{self.org}/{self.project}/_git/{self.repo}/pullrequest/{pr_id}",
            number=pr_id,
            state=result.get("status", "active"),
            created_at=parse_timestamp(created) if created else datetime.now(timezone.utc),
        )

    def assign(self, pr_id: str, assignees: list[str]) -> None:
        self.request_reviewers(pr_id, assignees)

    def request_reviewers(self, pr_id: str, reviewers: list[str]) -> None:
        for reviewer in reviewers:
            self._request(
                "PUT",
                f"pullrequests/{pr_id}/reviewers/{reviewer}",
                params=self._params(),
                json={"vote": 0},
            )

    def add_labels(self, pr_id: str, labels: list[str]) -> None:
        for label in labels:
            self._request("POST", f"pullrequests/{pr_id}/labels", params=self._params(), json={"name": label})

    def add_comment(self, pr_id: str, comment: str) -> None:
        body = {"comments": [{"parentCommentId": 0, "content": comment, "commentType": 1}], "status": 1}
        self._request("POST", f"pullrequests/{pr_id}/threads", params=self._params(), json=body)

    def last_modification(self, path: str) -> tuple[datetime, CommitInfo]:
        params = self._params(**{"searchCriteria.itemPath": "/" + path, "searchCriteria.$top": 1})
        result = self._request("GET", "commits", params=params) or {}
        commits = result.get("value") or []
        if not commits:
            raise ProviderError(f"azure: no commits found for file: {path}")
        c = commits[0]
        author = c.get("author") or {}
        info = CommitInfo(
            hash=c.get("commitId", ""),
            author=author.get("name", ""),
            email=author.get("email", ""),
            message=c.get("comment", ""),
        )
        return parse_timestamp(author["date"]), info
