"""Core recertification orchestration.

    scan → enrich → check → group → per unit: assign → render → materialize

Everything up to grouping runs once over the whole repository. Review units
are then independent (disjoint files, distinct branches) and are processed
on a bounded thread pool; a failure in one unit is logged and counted, never
fatal to the run.
"""

from __future__ import annotations

import logging
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Callable, Optional

from ice_core.assign import Resolver
from ice_core.config import build_policies
from ice_core.errors import ConfigError
from ice_core.models import FileRecord, ReviewUnit, RunSummary, UnitResult, Verdict
from ice_core.plugins import PluginManager
from ice_core.providers.base import GitProvider
from ice_core.scan.checker import Checker
from ice_core.scan.history import HistoryProvider, enrich
from ice_core.scan.scanner import LocalScanner, Scanner
from ice_core.strategy import get_strategy
from ice_core.template import Generator, build_changes, read_from_root

# Hook signature: (event_type, message, details, error). The CLI wires this to
# an audit sink; the core has no knowledge of how events are persisted.
EventHook = Callable[[str, str, dict, Optional[str]], None]


def get_provider(config: dict, token: str, logger: logging.Logger | None = None) -> GitProvider:
    """Instantiate the gateway for ``repository.provider``."""
    name = config["repository"]["provider"]
    url = config["repository"]["url"]
    if name == "github":
        from ice_core.providers.github import GitHubProvider

        return GitHubProvider(url, token, logger=logger)
    if name == "azure":
        from ice_core.providers.azure import AzureDevOpsProvider

        return AzureDevOpsProvider(url, token, logger=logger)
    if name == "gitlab":
        from ice_core.providers.gitlab import GitLabProvider

        return GitLabProvider(url, token, logger=logger)
    raise ConfigError(f"Unsupported provider: {name!r}. Choose 'github', 'azure' or 'gitlab'.")


class Engine:
    def __init__(
        self,
        config: dict,
        provider: GitProvider | None,
        *,
        repo_root: str = ".",
        scanner: Scanner | None = None,
        history: HistoryProvider | None = None,
        plugins: PluginManager | None = None,
        on_event: EventHook | None = None,
        clock: Callable[[], datetime] | None = None,
        read_file: Callable[[str], str] | None = None,
        logger: logging.Logger | None = None,
    ):
        self.config = config
        self.provider = provider
        self.repo_root = repo_root
        self.logger = logger or logging.getLogger(__name__)
        self.dry_run = bool(config["global"].get("dry_run"))
        self.base_branch = config["global"].get("default_base_branch") or "main"
        self.max_workers = max(1, int(config["global"].get("max_concurrent_prs") or 1))

        self.policies = build_policies(config)
        self._policies_by_name = {p.name: p for p in self.policies}
        self.plugins = plugins if plugins is not None else PluginManager(config.get("plugins"), self.logger)
        self.scanner = scanner or LocalScanner(self.logger)
        self.history = history if history is not None else provider
        self.checker = Checker(self.logger)
        self.strategy = get_strategy(config["pr_strategy"], self.plugins, self.logger)
        self.resolver = Resolver(config["assignment"], self.plugins, self.logger)
        self.generator = Generator(config["pr_template"])
        self.read_file = read_file or read_from_root(repo_root)
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self._on_event = on_event

    # ------------------------------------------------------------------ #
    # Pipeline                                                            #
    # ------------------------------------------------------------------ #

    def evaluate(self, now: datetime | None = None) -> tuple[list[FileRecord], list[Verdict]]:
        """Scan, enrich and check the repository; return ``(files, verdicts)``."""
        now = now or self.clock()
        files = self.scanner.scan(self.repo_root, self.policies)
        self._emit("scan_complete", f"scanned {len(files)} file(s)", {"files": len(files)})

        if self.history is not None:
            files = enrich(files, self.history, self.logger)
            self._emit("enrich_complete", f"enriched {len(files)} file(s)", {"files": len(files)})
        else:
            self.logger.warning("No history provider configured; every file is treated as unmodified since epoch")

        verdicts = self.checker.check(files, self.policies, now)
        stale = sum(1 for v in verdicts if v.needs_recertification)
        self._emit(
            "check_complete",
            f"{stale} of {len(verdicts)} file(s) need recertification",
            {"evaluated": len(verdicts), "stale": stale},
        )
        return files, verdicts

    def run(self, cancel: threading.Event | None = None) -> RunSummary:
        """Run the full pipeline and return a RunSummary.

        Configuration errors raise. Unit-level failures are recorded in the
        summary. Setting ``cancel`` stops new units from starting; a unit
        already in flight finishes its whole call sequence.
        """
        summary = RunSummary(run_id=uuid.uuid4().hex[:12])
        now = self.clock()
        self.logger.info("Starting recertification run %s (dry_run=%s)", summary.run_id, self.dry_run)
        self._emit("run_start", "recertification run started", {"run_id": summary.run_id, "dry_run": self.dry_run})

        try:
            files, verdicts = self.evaluate(now)
            units = self.strategy.group(verdicts)
        except Exception as e:
            self.logger.error("Run %s aborted: %s", summary.run_id, e)
            self._emit("error", "recertification run aborted", {"run_id": summary.run_id}, str(e))
            raise
        summary.scanned = len(files)
        summary.evaluated = len(verdicts)
        summary.stale = sum(1 for v in verdicts if v.needs_recertification)

        self._emit("group_complete", f"created {len(units)} review unit(s)", {"units": [u.id for u in units]})

        def run_unit(unit: ReviewUnit) -> UnitResult:
            if cancel is not None and cancel.is_set():
                self.logger.info("Cancelled before starting %s", unit.id)
                return UnitResult(unit.id, unit.branch_name, "skipped", files=len(unit.verdicts))
            return self.process_unit(unit, now)

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="ice-unit") as pool:
            summary.results = list(pool.map(run_unit, units))

        self.logger.info(
            "Run %s completed: %d processed, %d failed, %d skipped",
            summary.run_id,
            summary.processed,
            summary.failed,
            summary.skipped,
        )
        self._emit(
            "run_end",
            "recertification run completed",
            {"processed": summary.processed, "failed": summary.failed, "skipped": summary.skipped},
        )
        return summary

    def process_unit(self, unit: ReviewUnit, now: datetime) -> UnitResult:
        """Assign, render and materialize one review unit. Never raises."""
        branch = unit.branch_name
        try:
            assignment = self.resolver.resolve(unit)
            unit.assignees = list(assignment.assignees)
            unit.reviewers = list(assignment.reviewers)

            request = self.generator.build_request(unit, self.base_branch, now)
            request.changes = build_changes(unit, self._policies_by_name, self.read_file, now, self.logger)

            if self.dry_run:
                self.logger.info(
                    "Dry run: would open %r on %s with %d change(s), assignees=%s",
                    request.title,
                    branch,
                    len(request.changes),
                    request.assignees,
                )
                return UnitResult(unit.id, branch, "dry_run", files=len(unit.verdicts))

            return self._materialize(unit, request)
        except Exception as e:
            self.logger.error("Failed to process %s: %s", unit.id, e)
            self._emit("pr_error", f"failed to process {unit.id}", {"unit": unit.id, "branch": branch}, str(e))
            return UnitResult(unit.id, branch, "failed", files=len(unit.verdicts), error=str(e))

    def _materialize(self, unit: ReviewUnit, request) -> UnitResult:
        provider = self.provider
        if provider is None:
            raise ConfigError("No provider configured for materialization")
        branch = request.branch

        if provider.branch_exists(branch):
            self.logger.info("Branch %s already exists, skipping creation", branch)
        else:
            provider.ensure_branch(branch, request.base_branch)

        if provider.pull_request_exists(branch, request.base_branch):
            self.logger.info("Pull request for %s already exists, skipping creation", branch)
            self._emit("pr_exists", f"pull request already open for {unit.id}", {"unit": unit.id, "branch": branch})
            return UnitResult(unit.id, branch, "exists", files=len(unit.verdicts))

        # A branch without a PR may be left over from a run whose commit failed.
        if request.changes:
            provider.create_commit(branch, request.commit_message, request.changes)
        else:
            self.logger.warning("%s has no content changes (no decorator configured); branch left empty", unit.id)

        pr = provider.ensure_pull_request(request)
        self.logger.info("Created pull request %s for %s", pr.url, unit.id)

        # The PR exists at this point; decoration failures are reported, not fatal.
        for action, values, fn in (
            ("assign", request.assignees, provider.assign),
            ("request reviewers", request.reviewers, provider.request_reviewers),
            ("add labels", request.labels, provider.add_labels),
        ):
            if not values:
                continue
            try:
                fn(pr.id, values)
            except Exception as e:
                self.logger.warning("Could not %s on %s: %s", action, pr.url, e)

        self._emit(
            "pr_created",
            f"created pull request for {unit.id}",
            {"unit": unit.id, "branch": branch, "url": pr.url, "files": unit.paths, "assignees": request.assignees},
        )
        return UnitResult(unit.id, branch, "created", files=len(unit.verdicts), pr_url=pr.url)

    def _emit(self, event_type: str, message: str, details: dict | None = None, error: str | None = None) -> None:
        if self._on_event is None:
            return
        try:
            self._on_event(event_type, message, details or {}, error)
        except Exception as e:
            self.logger.warning("Audit hook failed for %s: %s", event_type, e)
