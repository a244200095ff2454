import copy
import os
import string
from pathlib import Path
from typing import Optional

import yaml

from ice_core.errors import ConfigError
from ice_core.models import Policy
from ice_core.scan.patterns import validate_glob

PROVIDERS = ("github", "azure", "gitlab")
PR_STRATEGIES = ("per_file", "per_pattern", "per_committer", "single_pr", "plugin")
ASSIGNMENT_STRATEGIES = ("static", "last_committer", "plugin", "composite")
RULE_STRATEGIES = ("static", "last_committer", "plugin")
AUDIT_STORAGES = ("noop", "file", "sqlite")
PLUGIN_TYPES = ("assignment", "strategy")
TITLE_PLACEHOLDERS = ("group_id", "strategy", "file_count", "priority", "date")

DEFAULT_CONFIG: dict = {
    "version": "1",
    "repository": {"url": None, "provider": "github"},
    "auth": {"provider": None, "token_env": None},  # provider defaults to repository.provider
    "global": {
        "dry_run": False,
        "verbose_logging": False,
        "max_concurrent_prs": 1,
        "default_base_branch": "main",
    },
    "patterns": [],
    "pr_strategy": {"type": "per_pattern", "max_files_per_pr": 0, "plugin_name": None},
    "assignment": {
        "strategy": "static",
        "rules": [],
        "fallback_assignees": [],
        "fallback_reviewers": [],
        "plugin": None,
    },
    "plugins": {},
    "pr_template": {
        "title": "IaC Recertification: {group_id}",
        "include_file_list": True,
        "include_checklist": True,
        "custom_instructions": "",
        "labels": ["recertification"],
        "commit_message": "Trigger recertification",
    },
    "audit": {"enabled": False, "storage": "noop", "config": {}},
}

_DEFAULT_TOKEN_ENV = {"github": "GITHUB_TOKEN", "azure": "AZURE_DEVOPS_TOKEN", "gitlab": "GITLAB_TOKEN"}


def load_config(config_path: str = ".ice.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. The YAML config file, if it exists
      3. CLI argument overrides, keyed by dotted path (e.g. ``global.dry_run``)
    """
    config = copy.deepcopy(DEFAULT_CONFIG)

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            try:
                file_config = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"{config_path}: invalid YAML: {e}") from e
        if not isinstance(file_config, dict):
            raise ConfigError(f"{config_path}: top level must be a mapping")
        for key, value in file_config.items():
            # Nested sections merge one level deep so a partial section keeps its defaults.
            if isinstance(config.get(key), dict) and isinstance(value, dict) and key != "plugins":
                config[key].update(value)
            else:
                config[key] = value

    if cli_overrides:
        for dotted, value in cli_overrides.items():
            if value is None:
                continue
            section, _, key = dotted.rpartition(".")
            target = config.setdefault(section, {}) if section else config
            target[key] = value

    if not config["auth"].get("provider"):
        config["auth"]["provider"] = config["repository"].get("provider")
    if not config["auth"].get("token_env"):
        config["auth"]["token_env"] = _DEFAULT_TOKEN_ENV.get(config["auth"]["provider"], "GITHUB_TOKEN")

    return config


def resolve_token(config: dict) -> Optional[str]:
    """Return the API token from the environment variable named by ``auth.token_env``."""
    return os.environ.get(config["auth"]["token_env"])


def validate_config(config: dict) -> None:
    """Raise a single ConfigError listing every problem found in ``config``."""
    problems: list[str] = []

    repo = config.get("repository") or {}
    if not repo.get("url"):
        problems.append("repository.url is required")
    if repo.get("provider") not in PROVIDERS:
        problems.append(f"repository.provider must be one of {', '.join(PROVIDERS)} (got {repo.get('provider')!r})")

    try:
        if int(config["global"].get("max_concurrent_prs") or 0) < 1:
            problems.append("global.max_concurrent_prs must be >= 1")
    except (TypeError, ValueError):
        problems.append("global.max_concurrent_prs must be an integer")

    patterns = config.get("patterns") or []
    if not patterns:
        problems.append("at least one entry under patterns is required")
    seen: set[str] = set()
    for i, p in enumerate(patterns):
        if not isinstance(p, dict):
            problems.append(f"patterns[{i}]: must be a mapping")
            continue
        name = p.get("name")
        where = f"patterns[{i}]" + (f" ({name})" if name else "")
        if not name:
            problems.append(f"{where}: name is required")
        elif name in seen:
            problems.append(f"{where}: duplicate pattern name")
        seen.add(name)
        if not p.get("paths"):
            problems.append(f"{where}: paths is required")
        for glob in list(p.get("paths") or []) + list(p.get("exclude") or []):
            try:
                validate_glob(glob)
            except ConfigError as e:
                problems.append(f"{where}: {e}")
        try:
            if int(p.get("recertification_days") or 0) < 1:
                problems.append(f"{where}: recertification_days must be >= 1")
        except (TypeError, ValueError):
            problems.append(f"{where}: recertification_days must be an integer")

    strategy = config["pr_strategy"]
    if strategy.get("type") not in PR_STRATEGIES:
        problems.append(f"pr_strategy.type must be one of {', '.join(PR_STRATEGIES)} (got {strategy.get('type')!r})")
    if strategy.get("type") == "plugin" and not strategy.get("plugin_name"):
        problems.append("pr_strategy.plugin_name is required for the plugin strategy")
    try:
        if int(strategy.get("max_files_per_pr") or 0) < 0:
            problems.append("pr_strategy.max_files_per_pr must be >= 0")
    except (TypeError, ValueError):
        problems.append("pr_strategy.max_files_per_pr must be an integer")

    assignment = config["assignment"]
    if assignment.get("strategy") not in ASSIGNMENT_STRATEGIES:
        problems.append(
            f"assignment.strategy must be one of {', '.join(ASSIGNMENT_STRATEGIES)} "
            f"(got {assignment.get('strategy')!r})"
        )
    if assignment.get("strategy") == "plugin" and not assignment.get("plugin"):
        problems.append("assignment.plugin is required for the plugin strategy")
    for i, rule in enumerate(assignment.get("rules") or []):
        if not isinstance(rule, dict):
            problems.append(f"assignment.rules[{i}]: must be a mapping")
            continue
        if not rule.get("pattern"):
            problems.append(f"assignment.rules[{i}]: pattern is required")
        else:
            try:
                validate_glob(rule["pattern"])
            except ConfigError as e:
                problems.append(f"assignment.rules[{i}]: {e}")
        if rule.get("strategy") not in RULE_STRATEGIES:
            problems.append(f"assignment.rules[{i}]: strategy must be one of {', '.join(RULE_STRATEGIES)}")
        if rule.get("strategy") == "plugin" and not rule.get("plugin"):
            problems.append(f"assignment.rules[{i}]: plugin is required for the plugin strategy")

    plugins = config.get("plugins") or {}
    if not isinstance(plugins, dict):
        problems.append("plugins must be a mapping of plugin name to settings")
        plugins = {}
    for name, plugin in plugins.items():
        if not isinstance(plugin, dict):
            problems.append(f"plugins.{name}: must be a mapping")
            continue
        if plugin.get("type") not in PLUGIN_TYPES:
            problems.append(f"plugins.{name}: type must be one of {', '.join(PLUGIN_TYPES)}")
        if not plugin.get("module"):
            problems.append(f"plugins.{name}: module is required")

    title = config["pr_template"].get("title") or ""
    if not title:
        problems.append("pr_template.title is required")
    else:
        try:
            fields = [f for _, f, _, _ in string.Formatter().parse(title) if f is not None]
        except ValueError as e:
            problems.append(f"pr_template.title: {e}")
        else:
            for f in fields:
                if f not in TITLE_PLACEHOLDERS:
                    problems.append(f"pr_template.title: unknown placeholder {{{f}}}")

    audit = config.get("audit") or {}
    if audit.get("enabled") and audit.get("storage") not in AUDIT_STORAGES:
        problems.append(f"audit.storage must be one of {', '.join(AUDIT_STORAGES)}")

    if problems:
        raise ConfigError("Invalid configuration:\n  - " + "\n  - ".join(problems))


def build_policies(config: dict) -> list[Policy]:
    """Return the configured policies, in configuration order."""
    return [Policy.from_dict(p) for p in config.get("patterns") or []]
