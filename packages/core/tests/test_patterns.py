"""Tests for glob matching and policy selection."""

import pytest

from ice_core.errors import ConfigError
from ice_core.models import Policy
from ice_core.scan.patterns import match_glob, match_policy, normalize_path, validate_glob


def _policy(name, paths, exclude=(), enabled=True, days=90):
    return Policy(name=name, paths=tuple(paths), recertification_days=days, exclude=tuple(exclude), enabled=enabled)


class TestMatchGlob:
    def test_star_stays_within_segment(self):
        assert match_glob("*.tf", "main.tf")
        assert not match_glob("*.tf", "modules/main.tf")

    def test_double_star_matches_zero_segments(self):
        assert match_glob("modules/**/*.tf", "modules/main.tf")

    def test_double_star_matches_many_segments(self):
        assert match_glob("modules/**/*.tf", "modules/network/vpc/main.tf")

    def test_leading_double_star(self):
        assert match_glob("**/*.yaml", "k8s/base/deploy.yaml")
        assert match_glob("**/*.yaml", "deploy.yaml")

    def test_trailing_double_star(self):
        assert match_glob("terraform/**", "terraform/prod/main.tf")
        assert not match_glob("terraform/**", "ansible/site.yml")

    def test_question_mark_and_class(self):
        assert match_glob("env-?/main.tf", "env-a/main.tf")
        assert match_glob("env-[ab]/main.tf", "env-b/main.tf")
        assert not match_glob("env-[ab]/main.tf", "env-c/main.tf")

    def test_match_is_case_sensitive(self):
        assert not match_glob("*.TF", "main.tf")

    def test_backslashes_and_leading_dot_slash_normalised(self):
        assert match_glob("modules/*.tf", "modules\\main.tf")
        assert normalize_path("./a\\b.tf") == "a/b.tf"


class TestValidateGlob:
    @pytest.mark.parametrize("pattern", ["", "   ", "/abs/*.tf", "env-[ab/main.tf"])
    def test_rejects_malformed(self, pattern):
        with pytest.raises(ConfigError):
            validate_glob(pattern)

    def test_accepts_valid(self):
        validate_glob("modules/**/[a-z]*.tf")


class TestMatchPolicy:
    def test_first_matching_policy_wins(self):
        specific = _policy("prod", ["terraform/prod/**"])
        broad = _policy("all-tf", ["**/*.tf"])
        assert match_policy([specific, broad], "terraform/prod/main.tf") is specific
        assert match_policy([broad, specific], "terraform/prod/main.tf") is broad

    def test_exclude_blocks_match_and_falls_through(self):
        tf = _policy("tf", ["**/*.tf"], exclude=["**/test/**"])
        catch_all = _policy("any", ["**"])
        assert match_policy([tf, catch_all], "modules/test/main.tf") is catch_all

    def test_disabled_policy_skipped(self):
        off = _policy("off", ["**/*.tf"], enabled=False)
        assert match_policy([off], "main.tf") is None

    def test_no_match_returns_none(self):
        assert match_policy([_policy("tf", ["**/*.tf"])], "README.md") is None
