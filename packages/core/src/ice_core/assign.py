"""Assignment resolution: who reviews a review unit.

Resolution must never block PR creation. Errors in the built-in strategies
fall back to ``fallback_assignees``; plugin failures are the exception and
propagate, because a misconfigured plugin name is a configuration bug.
"""

from __future__ import annotations

import logging
from datetime import datetime

from ice_core.errors import ConfigError
from ice_core.models import AssignmentOutcome, ReviewUnit
from ice_core.plugins import PluginManager
from ice_core.scan.patterns import match_glob


def last_committer(unit: ReviewUnit) -> list[str]:
    """Return the author of the most recently modified file in ``unit``.

    Ties keep the first-seen file. Files without an author or a timestamp
    are ignored; an empty list means no file carried author metadata.
    """
    author = ""
    latest: datetime | None = None
    for v in unit.verdicts:
        f = v.file
        if not f.commit.author or f.last_modified is None:
            continue
        if latest is None or f.last_modified > latest:
            author = f.commit.author
            latest = f.last_modified
    return [author] if author else []


class Resolver:
    def __init__(
        self,
        cfg: dict,
        plugins: PluginManager | None = None,
        logger: logging.Logger | None = None,
    ):
        self.cfg = cfg
        self.plugins = plugins
        self.logger = logger or logging.getLogger(__name__)
        self.strategy = cfg.get("strategy") or "static"
        self.fallback_assignees = list(cfg.get("fallback_assignees") or [])
        self.fallback_reviewers = list(cfg.get("fallback_reviewers") or [])
        self.rules = list(cfg.get("rules") or [])

    def resolve(self, unit: ReviewUnit) -> AssignmentOutcome:
        self.logger.debug(
            "Resolving assignment for %s (strategy=%s, files=%d)", unit.id, self.strategy, len(unit.verdicts)
        )
        if self.strategy == "plugin":
            outcome = self._from_plugin(self.cfg.get("plugin"), unit)
        elif self.strategy == "composite":
            outcome = self._composite(unit)
        else:
            outcome = self._guarded(self._builtin, self.strategy, unit, self.fallback_assignees)

        if not outcome.reviewers:
            outcome.reviewers = list(self.fallback_reviewers)
        if not outcome.priority:
            outcome.priority = unit.priority.value
        self.logger.debug("Assigned %s: assignees=%s reviewers=%s", unit.id, outcome.assignees, outcome.reviewers)
        return outcome

    def _builtin(self, strategy: str, unit: ReviewUnit, fallback: list[str]) -> AssignmentOutcome:
        if strategy == "static":
            return AssignmentOutcome(assignees=list(fallback))
        if strategy == "last_committer":
            return AssignmentOutcome(assignees=last_committer(unit))
        raise ConfigError(f"Unknown assignment strategy: {strategy!r}")

    def _guarded(self, fn, strategy: str, unit: ReviewUnit, fallback: list[str]) -> AssignmentOutcome:
        try:
            return fn(strategy, unit, fallback)
        except Exception as e:
            self.logger.warning("Assignment for %s failed (%s); using fallback assignees", unit.id, e)
            return AssignmentOutcome(assignees=list(self.fallback_assignees))

    def _composite(self, unit: ReviewUnit) -> AssignmentOutcome:
        for rule in self.rules:
            pattern = rule.get("pattern", "")
            # A rule applies when any file of the unit matches its glob.
            if not any(match_glob(pattern, path) for path in unit.paths):
                continue
            strategy = rule.get("strategy")
            self.logger.debug("%s matched composite rule %r (strategy=%s)", unit.id, pattern, strategy)
            if strategy == "plugin":
                return self._from_plugin(rule.get("plugin"), unit)
            fallback = rule.get("fallback_assignees") or self.fallback_assignees
            return self._guarded(self._builtin, strategy, unit, fallback)
        self.logger.debug("%s matched no composite rule; using fallback assignees", unit.id)
        return AssignmentOutcome(assignees=list(self.fallback_assignees))

    def _from_plugin(self, name: str | None, unit: ReviewUnit) -> AssignmentOutcome:
        if self.plugins is None:
            raise ConfigError("assignment plugin configured but no plugins are loaded")
        plugin = self.plugins.get_assignment_plugin(name)
        try:
            return plugin.resolve([v.file for v in unit.verdicts])
        except Exception:
            self.logger.error("Assignment plugin %r failed for %s", name, unit.id)
            raise
