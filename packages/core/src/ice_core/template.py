"""PR text rendering and decorator content changes."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable

from ice_core.models import FileChange, Policy, PRRequest, ReviewUnit

_UNIT_MARKER = "<!-- ice-unit: {unit_id} -->"

_CHECKLIST = [
    "Resources in these files are still required",
    "Configuration matches current security and compliance standards",
    "Owners and tags are up to date",
    "No deprecated modules, providers or versions are in use",
]


class Generator:
    def __init__(self, cfg: dict):
        self.cfg = cfg

    def title(self, unit: ReviewUnit, now: datetime) -> str:
        return self.cfg["title"].format(
            group_id=unit.id,
            strategy=unit.strategy,
            file_count=len(unit.verdicts),
            priority=unit.priority.value,
            date=now.date().isoformat(),
        )

    def description(self, unit: ReviewUnit, now: datetime) -> str:
        lines = ["## IaC recertification\n"]
        n = len(unit.verdicts)
        lines.append(
            f"> {n} file(s) have not been modified within their recertification interval. "
            f"Highest priority: **{unit.priority.value}**.\n"
        )
        lines.append(f"Review unit `{unit.id}` · strategy `{unit.strategy}` · generated {now.date().isoformat()}\n")

        if self.cfg.get("include_file_list", True):
            lines.append("| File | Policy | Days since change | Threshold | Priority | Last author |")
            lines.append("|------|--------|:-----------------:|:---------:|:--------:|-------------|")
            for v in unit.verdicts:
                lines.append(
                    f"| `{v.file.path}` | {v.policy_name} | {v.days_since} | {v.threshold} "
                    f"| {v.priority.value} | {v.file.commit.author or '-'} |"
                )
            lines.append("")

        if self.cfg.get("include_checklist", True):
            lines.append("### Reviewer checklist")
            lines.extend(f"- [ ] {item}" for item in _CHECKLIST)
            lines.append("")

        instructions = (self.cfg.get("custom_instructions") or "").strip()
        if instructions:
            lines.append("### Instructions")
            lines.append(instructions)
            lines.append("")

        lines.append(_UNIT_MARKER.format(unit_id=unit.id))
        return "\n".join(lines)

    def build_request(self, unit: ReviewUnit, base_branch: str, now: datetime) -> PRRequest:
        return PRRequest(
            title=self.title(unit, now),
            description=self.description(unit, now),
            branch=unit.branch_name,
            base_branch=base_branch,
            commit_message=self.cfg.get("commit_message") or "Trigger recertification",
            assignees=list(unit.assignees),
            reviewers=list(unit.reviewers),
            labels=list(self.cfg.get("labels") or []),
        )


def apply_decorator(content: str, decorator: str, now: datetime) -> str:
    """Return ``content`` with a fresh decorator line at the top.

    A leading line that already starts with the decorator's fixed prefix
    (the text before ``{timestamp}``) is replaced rather than stacked.
    """
    prefix = decorator.split("{timestamp}", 1)[0]
    if prefix and content.startswith(prefix):
        _, newline, rest = content.partition("\n")
        content = rest if newline else ""
    stamped = decorator.replace("{timestamp}", now.isoformat())
    if not stamped.endswith("\n"):
        stamped += "\n"
    return stamped + content


def read_from_root(root: str) -> Callable[[str], str]:
    base = Path(root)

    def reader(path: str) -> str:
        return (base / path).read_text(encoding="utf-8")

    return reader


def build_changes(
    unit: ReviewUnit,
    policies: dict[str, Policy],
    read_file: Callable[[str], str],
    now: datetime,
    logger: logging.Logger | None = None,
) -> list[FileChange]:
    """Render decorator updates for every file of ``unit`` whose policy defines one."""
    log = logger or logging.getLogger(__name__)
    changes: list[FileChange] = []
    for v in unit.verdicts:
        policy = policies.get(v.policy_name)
        if policy is None or not policy.decorator:
            continue
        try:
            content = read_file(v.file.path)
        except (OSError, UnicodeDecodeError) as e:
            log.warning("Could not read %s for decoration: %s", v.file.path, e)
            continue
        changes.append(FileChange(path=v.file.path, content=apply_decorator(content, policy.decorator, now)))
    return changes
