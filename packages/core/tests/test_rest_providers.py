"""Tests for the Azure DevOps and GitLab gateways using a mocked requests session."""

import json
from unittest.mock import MagicMock

import pytest
import requests

from ice_core.errors import ConfigError, ProviderConflictError, ProviderError
from ice_core.models import FileChange, PRRequest
from ice_core.providers.azure import AzureDevOpsProvider, parse_azure_url
from ice_core.providers.gitlab import GitLabProvider

AZURE_URL = "https://dev.azure.com/acme/platform/_git/infra"
AZURE_API = "https://dev.azure.com/acme/platform/_apis/git/repositories/infra"
GITLAB_API = "https://gitlab.example.com/api/v4/projects/acme%2Finfra"


def _resp(status=200, body=None):
    resp = MagicMock()
    resp.status_code = status
    resp.content = b"" if body is None else json.dumps(body).encode()
    resp.text = "" if body is None else json.dumps(body)
    resp.json.return_value = body
    return resp


def _azure(*responses):
    session = MagicMock()
    session.request.side_effect = list(responses)
    return AzureDevOpsProvider(AZURE_URL, "pat", session=session), session


def _gitlab(*responses):
    session = MagicMock()
    session.request.side_effect = list(responses)
    return GitLabProvider("https://gitlab.example.com/acme/infra.git", "glpat", session=session), session


class TestAzureURL:
    def test_dev_azure_com(self):
        assert parse_azure_url(AZURE_URL) == ("acme", "platform", "infra")

    def test_visualstudio_com(self):
        assert parse_azure_url("https://acme.visualstudio.com/platform/_git/infra") == ("acme", "platform", "infra")

    @pytest.mark.parametrize(
        "url", ["https://dev.azure.com/acme/platform/infra", "https://example.com/acme/_git/infra"]
    )
    def test_invalid(self, url):
        with pytest.raises(ConfigError):
            parse_azure_url(url)


class TestAzureProvider:
    def test_auth_is_pat_basic(self):
        provider, session = _azure()
        assert session.auth == ("", "pat")
        assert provider.base_url == AZURE_API

    def test_branch_exists_requires_exact_ref(self):
        provider, _ = _azure(_resp(body={"value": [{"name": "refs/heads/recert/all-files-1", "objectId": "x"}]}))
        assert provider.branch_exists("recert/all-files") is False

    def test_ensure_branch_uses_zero_old_object(self):
        provider, session = _azure(
            _resp(body={"value": [{"name": "refs/heads/main", "objectId": "b" * 40}]}),
            _resp(body={"value": [{"success": True}]}),
        )
        provider.ensure_branch("recert/x", "main")
        body = session.request.call_args_list[1].kwargs["json"]
        assert body == [{"name": "refs/heads/recert/x", "oldObjectId": "0" * 40, "newObjectId": "b" * 40}]

    def test_create_commit_single_push_guarded_by_tip(self):
        provider, session = _azure(
            _resp(body={"value": [{"name": "refs/heads/recert/x", "objectId": "tip"}]}),
            _resp(body={"commits": [{"commitId": "newsha"}]}),
        )

        sha = provider.create_commit("recert/x", "msg", [FileChange("a.tf", "A"), FileChange("old.tf", action="delete")])

        assert sha == "newsha"
        method, url = session.request.call_args_list[1].args
        assert (method, url) == ("POST", f"{AZURE_API}/pushes")
        body = session.request.call_args_list[1].kwargs["json"]
        assert body["refUpdates"] == [{"name": "refs/heads/recert/x", "oldObjectId": "tip"}]
        changes = body["commits"][0]["changes"]
        assert changes[0] == {
            "changeType": "edit",
            "item": {"path": "/a.tf"},
            "newContent": {"content": "A", "contentType": "rawtext"},
        }
        assert changes[1] == {"changeType": "delete", "item": {"path": "/old.tf"}}

    def test_push_conflict(self):
        provider, _ = _azure(
            _resp(body={"value": [{"name": "refs/heads/recert/x", "objectId": "tip"}]}),
            _resp(409, {"message": "TF401028: The reference has already been updated"}),
        )
        with pytest.raises(ProviderConflictError) as exc:
            provider.create_commit("recert/x", "msg", [FileChange("a.tf", "A")])
        assert exc.value.status == 409

    def test_pull_request_exists(self):
        provider, session = _azure(_resp(body={"count": 1, "value": [{}]}))
        assert provider.pull_request_exists("recert/x", "main") is True
        params = session.request.call_args.kwargs["params"]
        assert params["searchCriteria.sourceRefName"] == "refs/heads/recert/x"
        assert params["searchCriteria.status"] == "active"

    def test_ensure_pull_request_builds_web_url(self):
        provider, _ = _azure(_resp(body={"pullRequestId": 12, "status": "active"}))
        pr = provider.ensure_pull_request(PRRequest("T", "D", "recert/x", "main"))
        assert pr.number == 12
        assert pr.url == "https://dev.azure.com/acme/platform/_git/infra/pullrequest/12"

    def test_assign_adds_reviewers(self):
        provider, session = _azure(_resp(body={}))
        provider.assign("12", ["alice-id"])
        method, url = session.request.call_args.args
        assert (method, url) == ("PUT", f"{AZURE_API}/pullrequests/12/reviewers/alice-id")
        assert session.request.call_args.kwargs["json"] == {"vote": 0}

    def test_last_modification(self):
        provider, _ = _azure(
            _resp(
                body={
                    "value": [
                        {
                            "commitId": "abc",
                            "comment": "tweak",
                            "author": {"name": "Alice", "email": "a@x", "date": "2024-01-02T03:04:05Z"},
                        }
                    ]
                }
            )
        )
        when, info = provider.last_modification("main.tf")
        assert when.year == 2024
        assert info.author == "Alice"

    def test_server_error(self):
        provider, _ = _azure(_resp(500, {"message": "oops"}))
        with pytest.raises(ProviderError) as exc:
            provider.branch_exists("recert/x")
        assert exc.value.status == 500


class TestGitLabProvider:
    def test_token_header(self):
        provider, session = _gitlab()
        session.headers.update.assert_called_with({"PRIVATE-TOKEN": "glpat"})
        assert provider.base_url == GITLAB_API

    def test_branch_exists(self):
        provider, _ = _gitlab(_resp(body={"name": "recert/x"}), _resp(404, {"message": "404 Branch Not Found"}))
        assert provider.branch_exists("recert/x") is True
        assert provider.branch_exists("recert/y") is False

    def test_branch_url_is_encoded(self):
        provider, session = _gitlab(_resp(body={"name": "recert/x"}))
        provider.branch_exists("recert/x")
        _, url = session.request.call_args.args
        assert url == f"{GITLAB_API}/repository/branches/recert%2Fx"

    def test_create_commit_action_list(self):
        provider, session = _gitlab(_resp(201, {"id": "newsha"}))

        sha = provider.create_commit("recert/x", "msg", [FileChange("a.tf", "A"), FileChange("b.tf", action="delete")])

        assert sha == "newsha"
        body = session.request.call_args.kwargs["json"]
        assert body["branch"] == "recert/x"
        assert body["actions"] == [
            {"action": "update", "file_path": "a.tf", "content": "A", "encoding": "text"},
            {"action": "delete", "file_path": "b.tf"},
        ]

    def test_pull_request_exists(self):
        provider, _ = _gitlab(_resp(body=[]))
        assert provider.pull_request_exists("recert/x", "main") is False

    def test_ensure_pull_request(self):
        provider, _ = _gitlab(_resp(201, {"iid": 3, "web_url": "https://gitlab.example.com/acme/infra/-/merge_requests/3"}))
        pr = provider.ensure_pull_request(PRRequest("T", "D", "recert/x", "main"))
        assert pr.id == "3"
        assert pr.url.endswith("/merge_requests/3")

    def test_assign_resolves_user_ids(self):
        provider, session = _gitlab(_resp(body={}))
        session.get.return_value = _resp(body=[{"id": 42}])

        provider.assign("3", ["alice"])

        assert session.get.call_args.kwargs["params"] == {"username": "alice"}
        assert session.request.call_args.kwargs["json"] == {"assignee_ids": [42]}

    def test_assign_unknown_users_raises(self):
        provider, session = _gitlab()
        session.get.return_value = _resp(body=[])
        with pytest.raises(ProviderError, match="no valid assignees"):
            provider.assign("3", ["ghost"])

    def test_last_modification(self):
        provider, _ = _gitlab(
            _resp(body=[{"id": "abc", "author_name": "bob", "committed_date": "2024-01-02T03:04:05.000+01:00"}])
        )
        when, info = provider.last_modification("main.tf")
        assert when.utcoffset().total_seconds() == 3600
        assert info.author == "bob"

    def test_network_error_wrapped(self):
        provider, session = _gitlab()
        session.request.side_effect = requests.ConnectionError("refused")
        with pytest.raises(ProviderError, match="refused"):
            provider.branch_exists("recert/x")
