"""Grouping strategies: stale verdicts -> review units.

Every built-in strategy is a partition of the stale verdicts: each one lands
in exactly one unit. Units come out in first-seen order of their grouping
key, which is deterministic for a given verdict order.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Callable

from ice_core.errors import ConfigError
from ice_core.models import ReviewUnit, Verdict
from ice_core.plugins import PluginManager


class Strategy(ABC):
    name: str = ""

    def __init__(self, max_files_per_pr: int = 0, logger: logging.Logger | None = None):
        self.max_files_per_pr = max_files_per_pr
        self.logger = logger or logging.getLogger(__name__)

    def group(self, verdicts: list[Verdict]) -> list[ReviewUnit]:
        stale = [v for v in verdicts if v.needs_recertification]
        self.logger.debug("%s: grouping %d stale of %d verdict(s)", self.name, len(stale), len(verdicts))
        units = unique_ids(split_units(self._group(stale), self.max_files_per_pr), self.logger)
        self.logger.info("%s: created %d review unit(s)", self.name, len(units))
        return units

    @abstractmethod
    def _group(self, stale: list[Verdict]) -> list[ReviewUnit]:
        """Partition verdicts that all need recertification."""


class PerFileStrategy(Strategy):
    name = "per_file"

    def _group(self, stale: list[Verdict]) -> list[ReviewUnit]:
        return [ReviewUnit(id=f"file-{v.file.path}", strategy=self.name, verdicts=[v]) for v in stale]


class _KeyedStrategy(Strategy):
    prefix: str = ""

    @abstractmethod
    def _key(self, verdict: Verdict) -> str:
        """Grouping key of one verdict."""

    def _group(self, stale: list[Verdict]) -> list[ReviewUnit]:
        buckets: dict[str, list[Verdict]] = {}
        for v in stale:
            buckets.setdefault(self._key(v), []).append(v)
        return [
            ReviewUnit(id=f"{self.prefix}-{key}", strategy=self.name, verdicts=files) for key, files in buckets.items()
        ]


class PerPatternStrategy(_KeyedStrategy):
    name = "per_pattern"
    prefix = "pattern"

    def _key(self, verdict: Verdict) -> str:
        return verdict.policy_name


class PerCommitterStrategy(_KeyedStrategy):
    name = "per_committer"
    prefix = "author"

    def _key(self, verdict: Verdict) -> str:
        return verdict.file.commit.author or "unknown"


class SinglePRStrategy(Strategy):
    name = "single_pr"

    def _group(self, stale: list[Verdict]) -> list[ReviewUnit]:
        if not stale:
            return []
        return [ReviewUnit(id="all-files", strategy=self.name, verdicts=list(stale))]


class PluginStrategy(Strategy):
    name = "plugin"

    def __init__(self, group_fn: Callable[[list[Verdict]], list[ReviewUnit]], **kwargs):
        super().__init__(**kwargs)
        self._group_fn = group_fn

    def _group(self, stale: list[Verdict]) -> list[ReviewUnit]:
        return list(self._group_fn(stale))


def split_units(units: list[ReviewUnit], max_files: int) -> list[ReviewUnit]:
    """Split units larger than ``max_files`` into ``<id>-1``, ``<id>-2``, ... preserving file order.

    ``max_files <= 0`` disables the cap.
    """
    if max_files <= 0:
        return units
    result: list[ReviewUnit] = []
    for unit in units:
        if len(unit.verdicts) <= max_files:
            result.append(unit)
            continue
        chunks = [unit.verdicts[i : i + max_files] for i in range(0, len(unit.verdicts), max_files)]
        for n, chunk in enumerate(chunks, 1):
            result.append(
                ReviewUnit(
                    id=f"{unit.id}-{n}",
                    strategy=unit.strategy,
                    verdicts=chunk,
                    assignees=list(unit.assignees),
                    reviewers=list(unit.reviewers),
                )
            )
    return result


def unique_ids(units: list[ReviewUnit], logger: logging.Logger | None = None) -> list[ReviewUnit]:
    """Rename units whose id repeats an earlier one to ``<id>-dup<k>``.

    Branch names derive from ids, so two units sharing an id would land on one
    branch and the second would never be reviewed. The suffix is chosen to be
    unused by any unit in the list.
    """
    logger = logger or logging.getLogger(__name__)
    taken = {u.id for u in units}
    seen: set[str] = set()
    for unit in units:
        if unit.id in seen:
            k = 2
            while f"{unit.id}-dup{k}" in taken:
                k += 1
            renamed = f"{unit.id}-dup{k}"
            logger.warning("Duplicate review unit id %s renamed to %s", unit.id, renamed)
            unit.id = renamed
            taken.add(renamed)
        seen.add(unit.id)
    return units


_STRATEGIES: dict[str, type[Strategy]] = {
    "per_file": PerFileStrategy,
    "per_pattern": PerPatternStrategy,
    "per_committer": PerCommitterStrategy,
    "single_pr": SinglePRStrategy,
}


def get_strategy(
    cfg: dict,
    plugins: PluginManager | None = None,
    logger: logging.Logger | None = None,
) -> Strategy:
    """Build the grouping strategy named by the ``pr_strategy`` config section."""
    kind = cfg.get("type")
    max_files = int(cfg.get("max_files_per_pr") or 0)
    if kind == "plugin":
        if plugins is None:
            raise ConfigError("plugin strategy requires a plugin manager")
        plugin = plugins.get_strategy_plugin(cfg.get("plugin_name"))
        return PluginStrategy(plugin.group, max_files_per_pr=max_files, logger=logger)
    cls = _STRATEGIES.get(kind)
    if cls is None:
        raise ConfigError(f"Unknown strategy type: {kind!r}")
    return cls(max_files_per_pr=max_files, logger=logger)
