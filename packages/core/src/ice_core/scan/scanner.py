"""Candidate discovery over an already checked-out working tree.

The engine never clones: callers point the scanner at a local checkout
(CI workspace, developer clone) and it lists the files that at least one
enabled policy cares about.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Protocol

from ice_core.models import FileRecord, Policy
from ice_core.scan.patterns import match_policy

_SKIP_DIRS = {".git", ".terraform", "node_modules"}


class Scanner(Protocol):
    def scan(self, root: str, policies: list[Policy]) -> list[FileRecord]: ...


class LocalScanner:
    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger(__name__)

    def scan(self, root: str, policies: list[Policy]) -> list[FileRecord]:
        """Return a FileRecord (path and size only) for each policy-matched file under ``root``.

        Paths are repository-relative with ``/`` separators and sorted so the
        downstream grouping sees a stable order.
        """
        base = Path(root)
        if not base.is_dir():
            raise FileNotFoundError(f"Repository root not found: {root}")

        records: list[FileRecord] = []
        for dirpath, dirnames, filenames in os.walk(base):
            dirnames[:] = sorted(d for d in dirnames if d not in _SKIP_DIRS)
            for name in filenames:
                full = Path(dirpath) / name
                rel = full.relative_to(base).as_posix()
                if match_policy(policies, rel) is None:
                    continue
                try:
                    size = full.stat().st_size
                except OSError as e:
                    self.logger.warning("Could not stat %s: %s", rel, e)
                    continue
                records.append(FileRecord(path=rel, size=size))

        records.sort(key=lambda r: r.path)
        self.logger.info("Scanned %s: %d candidate file(s)", root, len(records))
        return records
