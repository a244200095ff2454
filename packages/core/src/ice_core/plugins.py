"""Plugin contract and registry.

Plugins are selected by name from configuration but never loaded from
arbitrary code at runtime: every implementation registers itself under a
module name with ``@register_plugin`` and the manager instantiates the
registered class named by ``plugins.<name>.module``.

    plugins:
      owners:
        enabled: true
        type: assignment
        module: csv_lookup
        config:
          csv_file: owners.csv
          ...
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from ice_core.errors import PluginError

if TYPE_CHECKING:
    from ice_core.models import AssignmentOutcome, FileRecord, ReviewUnit, Verdict

ASSIGNMENT = "assignment"
STRATEGY = "strategy"

_REGISTRY: dict[str, tuple[str, type]] = {}


class Plugin(ABC):
    @abstractmethod
    def init(self, config: dict[str, str]) -> None:
        """Validate and store plugin configuration. Raise on invalid input."""


class AssignmentPlugin(Plugin):
    @abstractmethod
    def resolve(self, files: list[FileRecord]) -> AssignmentOutcome:
        """Return assignees/reviewers for the given files."""


class StrategyPlugin(Plugin):
    @abstractmethod
    def group(self, verdicts: list[Verdict]) -> list[ReviewUnit]:
        """Partition stale verdicts into review units."""


def register_plugin(module: str, kind: str):
    """Class decorator registering a plugin implementation under ``module``."""

    def decorator(cls):
        base = AssignmentPlugin if kind == ASSIGNMENT else StrategyPlugin
        if not issubclass(cls, base):
            raise TypeError(f"{cls.__name__} must subclass {base.__name__} to register as a {kind} plugin")
        _REGISTRY[module] = (kind, cls)
        return cls

    return decorator


def registered_modules() -> dict[str, str]:
    _load_builtins()
    return {module: kind for module, (kind, _) in _REGISTRY.items()}


def _load_builtins() -> None:
    # Statically linked implementations register on import.
    import ice_core.contrib.csvlookup  # noqa: F401


class PluginManager:
    """Instantiates and initialises every enabled plugin from the ``plugins`` config section."""

    def __init__(self, configs: dict | None, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger(__name__)
        self._plugins: dict[str, Plugin] = {}
        _load_builtins()

        for name, cfg in (configs or {}).items():
            if not cfg.get("enabled", True):
                continue
            module = cfg.get("module")
            kind = cfg.get("type")
            self.logger.info("Loading plugin %s (type=%s, module=%s)", name, kind, module)
            entry = _REGISTRY.get(module)
            if entry is None:
                raise PluginError(f"Unknown plugin module: {module!r} (plugin {name!r})")
            registered_kind, cls = entry
            if kind != registered_kind:
                raise PluginError(f"Plugin {name!r}: module {module!r} is a {registered_kind} plugin, not {kind}")
            plugin = cls()
            try:
                plugin.init({str(k): str(v) for k, v in (cfg.get("config") or {}).items()})
            except Exception as e:
                raise PluginError(f"Failed to init plugin {name!r}: {e}") from e
            self._plugins[name] = plugin

    def get_assignment_plugin(self, name: str) -> AssignmentPlugin:
        return self._get(name, AssignmentPlugin)

    def get_strategy_plugin(self, name: str) -> StrategyPlugin:
        return self._get(name, StrategyPlugin)

    def _get(self, name: str, base: type):
        plugin = self._plugins.get(name)
        if plugin is None:
            raise PluginError(f"Plugin not found: {name!r}")
        if not isinstance(plugin, base):
            raise PluginError(f"Plugin {name!r} is not a {base.__name__}")
        return plugin
