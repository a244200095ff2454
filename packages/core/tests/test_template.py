"""Tests for PR text rendering and decorator changes."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

from ice_core.config import DEFAULT_CONFIG
from ice_core.models import CommitInfo, FileRecord, Policy, Priority, ReviewUnit, Verdict
from ice_core.template import Generator, apply_decorator, build_changes, read_from_root

NOW = datetime(2024, 6, 1, 9, 30, tzinfo=timezone.utc)


def _verdict(path, policy="terraform", author="alice", priority=Priority.HIGH):
    f = FileRecord(path=path, last_modified=NOW - timedelta(days=100), commit=CommitInfo(author=author))
    return Verdict(
        file=f,
        policy_name=policy,
        days_since=100,
        threshold=90,
        priority=priority,
        needs_recertification=True,
        next_due_date=NOW,
    )


def _unit():
    return ReviewUnit(
        id="pattern-terraform",
        strategy="per_pattern",
        verdicts=[_verdict("a.tf"), _verdict("b.tf", author="", priority=Priority.CRITICAL)],
        assignees=["alice"],
        reviewers=["bob"],
    )


class TestGenerator:
    def test_default_title(self):
        gen = Generator(dict(DEFAULT_CONFIG["pr_template"]))
        assert gen.title(_unit(), NOW) == "IaC Recertification: pattern-terraform"

    def test_title_placeholders(self):
        gen = Generator({"title": "[{priority}] {strategy}: {file_count} files ({date})"})
        assert gen.title(_unit(), NOW) == "[Critical] per_pattern: 2 files (2024-06-01)"

    def test_description_sections(self):
        cfg = dict(DEFAULT_CONFIG["pr_template"], custom_instructions="Ping #infra when done.")
        body = Generator(cfg).description(_unit(), NOW)
        assert "| `a.tf` | terraform | 100 | 90 | High | alice |" in body
        assert "| `b.tf` | terraform | 100 | 90 | Critical | - |" in body
        assert "### Reviewer checklist" in body
        assert "Ping #infra when done." in body
        assert body.rstrip().endswith("<!-- ice-unit: pattern-terraform -->")

    def test_description_sections_can_be_disabled(self):
        cfg = dict(DEFAULT_CONFIG["pr_template"], include_file_list=False, include_checklist=False)
        body = Generator(cfg).description(_unit(), NOW)
        assert "| File |" not in body
        assert "checklist" not in body

    def test_build_request(self):
        cfg = dict(DEFAULT_CONFIG["pr_template"], labels=["recertification", "iac"], commit_message="chore: recert")
        request = Generator(cfg).build_request(_unit(), "develop", NOW)
        assert request.branch == "recert/pattern-terraform"
        assert request.base_branch == "develop"
        assert request.assignees == ["alice"]
        assert request.reviewers == ["bob"]
        assert request.labels == ["recertification", "iac"]
        assert request.commit_message == "chore: recert"


class TestDecorator:
    def test_prepends_stamped_line(self):
        out = apply_decorator('resource "x" "y" {}\n', "# recertified: {timestamp}", NOW)
        assert out == '# recertified: 2024-06-01T09:30:00+00:00\nresource "x" "y" {}\n'

    def test_replaces_existing_decorator_line(self):
        content = '# recertified: 2023-01-01T00:00:00+00:00\nresource "x" "y" {}\n'
        out = apply_decorator(content, "# recertified: {timestamp}", NOW)
        assert out.count("# recertified:") == 1
        assert out.startswith("# recertified: 2024-06-01")

    def test_build_changes_skips_unreadable_and_undecorated(self):
        policies = {
            "terraform": Policy(name="terraform", paths=("**",), recertification_days=90, decorator="# r: {timestamp}"),
            "k8s": Policy(name="k8s", paths=("**",), recertification_days=90),
        }
        unit = ReviewUnit(
            id="u",
            strategy="single_pr",
            verdicts=[_verdict("a.tf"), _verdict("missing.tf"), _verdict("deploy.yml", policy="k8s")],
        )

        def read_file(path):
            if path == "missing.tf":
                raise FileNotFoundError(path)
            return "body\n"

        logger = MagicMock()
        changes = build_changes(unit, policies, read_file, NOW, logger)

        assert [c.path for c in changes] == ["a.tf"]
        assert changes[0].content.startswith("# r: 2024-06-01")
        assert changes[0].action == "update"
        logger.warning.assert_called_once()

    def test_build_changes_skips_non_utf8_file(self, tmp_path):
        (tmp_path / "good.tf").write_text("body\n", encoding="utf-8")
        (tmp_path / "latin1.tf").write_bytes("# caf\xe9\n".encode("latin-1"))
        policies = {
            "terraform": Policy(name="terraform", paths=("**",), recertification_days=90, decorator="# r: {timestamp}"),
        }
        unit = ReviewUnit(id="u", strategy="single_pr", verdicts=[_verdict("latin1.tf"), _verdict("good.tf")])

        logger = MagicMock()
        changes = build_changes(unit, policies, read_from_root(tmp_path), NOW, logger)

        assert [c.path for c in changes] == ["good.tf"]
        logger.warning.assert_called_once()
