"""Glob matching of repository paths against recertification policies.

Globs follow the doublestar dialect used by most IaC tooling:

- ``*``, ``?`` and ``[...]`` match within a single path segment only
- a whole ``**`` segment matches zero or more segments
  (``modules/**/*.tf`` matches ``modules/main.tf`` and ``modules/a/b/main.tf``)

Segment matching is delegated to fnmatch.fnmatchcase, so character classes
behave exactly as they do in the standard library.
"""

from __future__ import annotations

import fnmatch
import logging
from typing import Iterable

from ice_core.errors import ConfigError
from ice_core.models import Policy

logger = logging.getLogger(__name__)


def normalize_path(path: str) -> str:
    """Return ``path`` with ``/`` separators and no leading ``./``."""
    path = path.replace("\\", "/")
    while path.startswith("./"):
        path = path[2:]
    return path


def validate_glob(pattern: str) -> None:
    """Raise ConfigError when ``pattern`` cannot be a repository-relative glob."""
    if not pattern or not pattern.strip():
        raise ConfigError("empty glob pattern")
    if pattern.startswith("/"):
        raise ConfigError(f"glob must be repository-relative: {pattern!r}")
    depth = 0
    for ch in pattern:
        if ch == "[":
            depth += 1
        elif ch == "]" and depth:
            depth -= 1
    if depth:
        raise ConfigError(f"unbalanced '[' in glob: {pattern!r}")


def match_glob(pattern: str, path: str) -> bool:
    return _match_segments(normalize_path(pattern).split("/"), normalize_path(path).split("/"))


def _match_segments(pattern: list[str], parts: list[str]) -> bool:
    if not pattern:
        return not parts
    head, rest = pattern[0], pattern[1:]
    if head == "**":
        # Collapse consecutive ** segments; each extra one adds nothing.
        while rest and rest[0] == "**":
            rest = rest[1:]
        return any(_match_segments(rest, parts[i:]) for i in range(len(parts) + 1))
    if not parts:
        return False
    if not fnmatch.fnmatchcase(parts[0], head):
        return False
    return _match_segments(rest, parts[1:])


def policy_matches(policy: Policy, path: str) -> bool:
    """True when ``path`` hits an include glob and no exclude glob of an enabled policy."""
    if not policy.enabled:
        return False
    if not any(match_glob(p, path) for p in policy.paths):
        return False
    for ex in policy.exclude:
        if match_glob(ex, path):
            logger.debug("%s excluded from %s by %r", path, policy.name, ex)
            return False
    return True


def match_policy(policies: Iterable[Policy], path: str) -> Policy | None:
    """Return the first enabled policy matching ``path`` in configured order, or None."""
    path = normalize_path(path)
    for policy in policies:
        if policy_matches(policy, path):
            return policy
    return None
