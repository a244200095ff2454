"""Enrich scanned files with their last commit from the hosting backend."""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Protocol

from ice_core.models import CommitInfo, FileRecord


class HistoryProvider(Protocol):
    def last_modification(self, path: str) -> tuple[datetime, CommitInfo]: ...


def enrich(
    files: list[FileRecord],
    history: HistoryProvider,
    logger: logging.Logger | None = None,
) -> list[FileRecord]:
    """Return copies of ``files`` carrying last-modification time and commit metadata.

    A failed lookup keeps the file with ``last_modified=None`` so the checker
    routes it toward recertification instead of silently dropping it.
    """
    log = logger or logging.getLogger(__name__)
    enriched: list[FileRecord] = []
    failures = 0
    for file in files:
        try:
            when, commit = history.last_modification(file.path)
        except Exception as e:
            failures += 1
            log.warning("Could not determine last modification of %s: %s", file.path, e)
            enriched.append(replace(file, last_modified=None))
            continue
        enriched.append(replace(file, last_modified=when, commit=commit))
    log.info("Enriched %d file(s) with commit history (%d lookup failure(s))", len(enriched), failures)
    return enriched
