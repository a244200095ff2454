"""Tests for grouping strategies."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from ice_core.errors import ConfigError, PluginError
from ice_core.models import CommitInfo, FileRecord, Priority, ReviewUnit, Verdict
from ice_core.strategy import (
    PerCommitterStrategy,
    PerFileStrategy,
    PerPatternStrategy,
    SinglePRStrategy,
    _KeyedStrategy,
    get_strategy,
    split_units,
)

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def _verdict(path, policy="terraform", author="", stale=True):
    f = FileRecord(path=path, last_modified=NOW - timedelta(days=100), commit=CommitInfo(author=author))
    return Verdict(
        file=f,
        policy_name=policy,
        days_since=100,
        threshold=90,
        priority=Priority.HIGH if stale else Priority.LOW,
        needs_recertification=stale,
        next_due_date=NOW,
    )


def _all_paths(units):
    return sorted(p for u in units for p in u.paths)


class TestBuiltinStrategies:
    def test_per_file_one_unit_per_stale_file(self):
        verdicts = [_verdict("a.tf"), _verdict("b.tf"), _verdict("c.tf", stale=False)]
        units = PerFileStrategy().group(verdicts)
        assert [u.id for u in units] == ["file-a.tf", "file-b.tf"]
        assert all(u.strategy == "per_file" for u in units)

    def test_per_pattern_groups_by_policy_in_first_seen_order(self):
        verdicts = [_verdict("a.tf", "tf"), _verdict("x.yml", "k8s"), _verdict("b.tf", "tf")]
        units = PerPatternStrategy().group(verdicts)
        assert [u.id for u in units] == ["pattern-tf", "pattern-k8s"]
        assert units[0].paths == ["a.tf", "b.tf"]

    def test_per_committer_alice_and_bob(self):
        verdicts = [_verdict("a.tf", author="alice"), _verdict("b.tf", author="bob"), _verdict("c.tf", author="alice")]
        units = PerCommitterStrategy().group(verdicts)
        assert {u.id: len(u.verdicts) for u in units} == {"author-alice": 2, "author-bob": 1}

    def test_per_committer_unknown_author(self):
        units = PerCommitterStrategy().group([_verdict("a.tf", author="")])
        assert units[0].id == "author-unknown"

    def test_single_pr_three_files(self):
        verdicts = [_verdict("a.tf"), _verdict("b.tf"), _verdict("c.tf")]
        units = SinglePRStrategy().group(verdicts)
        assert len(units) == 1
        assert units[0].id == "all-files"
        assert units[0].paths == ["a.tf", "b.tf", "c.tf"]

    def test_single_pr_nothing_stale(self):
        assert SinglePRStrategy().group([_verdict("a.tf", stale=False)]) == []

    @pytest.mark.parametrize("cls", [PerFileStrategy, PerPatternStrategy, PerCommitterStrategy, SinglePRStrategy])
    def test_every_strategy_partitions_stale_files(self, cls):
        verdicts = [
            _verdict("a.tf", "tf", "alice"),
            _verdict("b.yml", "k8s", "bob"),
            _verdict("c.tf", "tf", ""),
            _verdict("d.tf", "tf", "alice", stale=False),
        ]
        units = cls().group(verdicts)
        assert _all_paths(units) == ["a.tf", "b.yml", "c.tf"]


class TestSplitUnits:
    def test_splits_into_numbered_sub_units(self):
        unit = ReviewUnit(id="pattern-tf", strategy="per_pattern", verdicts=[_verdict(f"{i}.tf") for i in range(5)])
        parts = split_units([unit], 2)
        assert [p.id for p in parts] == ["pattern-tf-1", "pattern-tf-2", "pattern-tf-3"]
        assert [p.paths for p in parts] == [["0.tf", "1.tf"], ["2.tf", "3.tf"], ["4.tf"]]

    def test_unit_within_cap_untouched(self):
        unit = ReviewUnit(id="u", strategy="s", verdicts=[_verdict("a.tf")])
        assert split_units([unit], 3) == [unit]

    def test_zero_disables_cap(self):
        unit = ReviewUnit(id="u", strategy="s", verdicts=[_verdict(f"{i}.tf") for i in range(10)])
        assert split_units([unit], 0) == [unit]


class TestGetStrategy:
    def test_builds_named_strategy_with_cap(self):
        strategy = get_strategy({"type": "single_pr", "max_files_per_pr": 2})
        units = strategy.group([_verdict("a.tf"), _verdict("b.tf"), _verdict("c.tf")])
        assert [u.id for u in units] == ["all-files-1", "all-files-2"]

    def test_unknown_type_raises(self):
        with pytest.raises(ConfigError):
            get_strategy({"type": "per_moon_phase"})

    def test_plugin_strategy_delegates_and_is_capped(self):
        plugin = MagicMock()
        plugin.group.side_effect = lambda vs: [ReviewUnit(id="custom", strategy="plugin", verdicts=list(vs))]
        manager = MagicMock()
        manager.get_strategy_plugin.return_value = plugin

        strategy = get_strategy({"type": "plugin", "plugin_name": "mine", "max_files_per_pr": 1}, manager)
        units = strategy.group([_verdict("a.tf"), _verdict("b.tf", stale=False), _verdict("c.tf")])

        manager.get_strategy_plugin.assert_called_once_with("mine")
        passed = plugin.group.call_args.args[0]
        assert [v.file.path for v in passed] == ["a.tf", "c.tf"]
        assert [u.id for u in units] == ["custom-1", "custom-2"]

    def test_missing_plugin_propagates(self):
        manager = MagicMock()
        manager.get_strategy_plugin.side_effect = PluginError("Plugin not found: 'nope'")
        with pytest.raises(PluginError):
            get_strategy({"type": "plugin", "plugin_name": "nope"}, manager)


class TestDistinctBranches:
    def test_clean_id_maps_straight_to_branch(self):
        assert ReviewUnit(id="file-main.tf", strategy="per_file").branch_name == "recert/file-main.tf"

    def test_sanitized_ids_do_not_collide(self):
        units = PerFileStrategy().group([_verdict("a b.tf"), _verdict("a-b.tf")])
        branches = [u.branch_name for u in units]
        assert branches[1] == "recert/file-a-b.tf"
        assert branches[0].startswith("recert/file-a-b.tf-")
        assert len(set(branches)) == 2

    def test_committer_names_differing_only_in_spacing(self):
        verdicts = [_verdict("a.tf", author="Alice Smith"), _verdict("b.tf", author="Alice-Smith")]
        units = PerCommitterStrategy().group(verdicts)
        assert len({u.branch_name for u in units}) == 2

    def test_branch_name_is_stable_across_runs(self):
        first = PerFileStrategy().group([_verdict("dir/my file.tf")])[0].branch_name
        second = PerFileStrategy().group([_verdict("dir/my file.tf")])[0].branch_name
        assert first == second

    def test_split_sub_unit_and_policy_with_same_id_are_renamed(self):
        verdicts = [_verdict(f"{i}.tf", policy="x") for i in range(3)] + [_verdict("other.tf", policy="x-1")]
        units = PerPatternStrategy(max_files_per_pr=2).group(verdicts)
        assert [u.id for u in units] == ["pattern-x-1", "pattern-x-2", "pattern-x-1-dup2"]
        assert units[2].paths == ["other.tf"]
        assert len({u.branch_name for u in units}) == 3


def test_keyed_strategy_requires_key():
    class NoKey(_KeyedStrategy):
        name = "no_key"
        prefix = "k"

    with pytest.raises(TypeError):
        NoKey()
