"""GitLab gateway: atomic action-list backend.

``POST /projects/:id/repository/commits`` takes a branch and an ordered
list of per-file actions (create/update/delete) and applies them in one
call; there is no separate blob or tree step. Merge requests stand in for
pull requests, and assignees/reviewers are set by user id, so usernames are
resolved through ``/users?username=`` first.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from urllib.parse import quote

import requests

from ice_core.errors import ProviderError
from ice_core.models import CommitInfo, FileChange, PRRequest, RemotePR
from ice_core.providers.base import parse_timestamp, split_repo_url
from ice_core.providers.rest import DEFAULT_TIMEOUT, RestProvider


def _enc(value: str) -> str:
    return quote(value, safe="")


class GitLabProvider(RestProvider):
    name = "gitlab"

    def __init__(
        self,
        repo_url: str,
        token: str,
        session: requests.Session | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        logger: logging.Logger | None = None,
    ):
        scheme, host, project_path = split_repo_url(repo_url)
        # The URL-encoded namespace path is accepted wherever a numeric project id is.
        self.project = project_path
        super().__init__(
            f"{scheme}://{host}/api/v4/projects/{_enc(project_path)}",
            session=session,
            timeout=timeout,
            logger=logger,
        )
        self.api_root = f"{scheme}://{host}/api/v4"
        self.session.headers.update({"PRIVATE-TOKEN": token})

    def branch_exists(self, name: str) -> bool:
        return self._request("GET", f"repository/branches/{_enc(name)}", allow_missing=True) is not None

    def ensure_branch(self, name: str, base_ref: str) -> None:
        self._request("POST", "repository/branches", params={"branch": name, "ref": base_ref})
        self.logger.debug("Created branch %s from %s", name, base_ref)

    def create_commit(self, branch: str, message: str, changes: list[FileChange]) -> str:
        actions = []
        for change in changes:
            action = {"action": change.action, "file_path": change.path}
            if change.action != "delete":
                action.update({"content": change.content, "encoding": "text"})
            actions.append(action)
        body = {"branch": branch, "commit_message": message, "actions": actions}
        result = self._request("POST", "repository/commits", json=body) or {}
        if "id" not in result:
            raise ProviderError(f"gitlab: commit to {branch} returned no id")
        return result["id"]

    def pull_request_exists(self, head: str, base: str) -> bool:
        params = {"source_branch": head, "target_branch": base, "state": "opened", "per_page": 1}
        return bool(self._request("GET", "merge_requests", params=params))

    def ensure_pull_request(self, request: PRRequest) -> RemotePR:
        body = {
            "source_branch": request.branch,
            "target_branch": request.base_branch,
            "title": request.title,
            "description": request.description,
        }
        mr = self._request("POST", "merge_requests", json=body) or {}
        created = mr.get("created_at")
        return RemotePR(
            id=str(mr["iid"]),
            url=mr.get("web_url", ""),
            number=int(mr["iid"]),
            state=mr.get("state", "opened"),
            created_at=parse_timestamp(created) if created else datetime.now(timezone.utc),
        )

    def assign(self, pr_id: str, assignees: list[str]) -> None:
        ids = self._user_ids(assignees)
        if assignees and not ids:
            raise ProviderError("gitlab: no valid assignees found")
        if ids:
            self._request("PUT", f"merge_requests/{pr_id}", json={"assignee_ids": ids})

    def request_reviewers(self, pr_id: str, reviewers: list[str]) -> None:
        ids = self._user_ids(reviewers)
        if reviewers and not ids:
            raise ProviderError("gitlab: no valid reviewers found")
        if ids:
            self._request("PUT", f"merge_requests/{pr_id}", json={"reviewer_ids": ids})

    def add_labels(self, pr_id: str, labels: list[str]) -> None:
        if labels:
            self._request("PUT", f"merge_requests/{pr_id}", json={"add_labels": ",".join(labels)})

    def add_comment(self, pr_id: str, comment: str) -> None:
        self._request("POST", f"merge_requests/{pr_id}/notes", json={"body": comment})

    def _user_ids(self, usernames: list[str]) -> list[int]:
        ids = []
        for username in usernames:
            url = f"{self.api_root}/users"
            try:
                resp = self.session.get(url, params={"username": username}, timeout=self.timeout)
                resp.raise_for_status()
                users = resp.json()
            except requests.RequestException as e:
                self.logger.warning("Failed to resolve GitLab user %s: %s", username, e)
                continue
            if not users:
                self.logger.warning("GitLab user %s not found", username)
                continue
            ids.append(users[0]["id"])
        return ids

    def last_modification(self, path: str) -> tuple[datetime, CommitInfo]:
        commits = self._request("GET", "repository/commits", params={"path": path, "per_page": 1}) or []
        if not commits:
            raise ProviderError(f"gitlab: no commits found for file: {path}")
        c = commits[0]
        info = CommitInfo(
            hash=c.get("id", ""),
            author=c.get("author_name", ""),
            email=c.get("author_email", ""),
            message=c.get("message", ""),
        )
        return parse_timestamp(c["committed_date"]), info
