"""Staleness evaluation: last modification + policy -> recertification verdict."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from ice_core.models import FileRecord, Policy, Priority, Verdict
from ice_core.scan.patterns import match_policy

# Files whose history lookup failed are evaluated as if last touched at the
# epoch, which always yields a stale, Critical verdict.
UNKNOWN_MODIFICATION = datetime(1970, 1, 1, tzinfo=timezone.utc)

_CRITICAL_RATIO = 1.5
_HIGH_RATIO = 1.0
_MEDIUM_RATIO = 0.8


def compute_priority(days_since: int, threshold: int) -> tuple[Priority, bool]:
    """Return ``(priority, needs_recertification)`` for an age and a threshold (days)."""
    needs_recert = days_since >= threshold
    ratio = days_since / threshold
    if needs_recert:
        if ratio > _CRITICAL_RATIO:
            return Priority.CRITICAL, True
        if ratio >= _HIGH_RATIO:
            return Priority.HIGH, True
        if ratio >= _MEDIUM_RATIO:
            return Priority.MEDIUM, True
        return Priority.LOW, True
    if ratio >= _MEDIUM_RATIO:
        return Priority.MEDIUM, False
    return Priority.LOW, False


def evaluate(file: FileRecord, policy: Policy, now: datetime) -> Verdict:
    """Evaluate one file against its matched policy at instant ``now``."""
    last_modified = file.last_modified or UNKNOWN_MODIFICATION
    elapsed = now - last_modified
    days_since = int(elapsed.total_seconds() // 3600 // 24)
    threshold = policy.recertification_days
    priority, needs_recert = compute_priority(days_since, threshold)
    return Verdict(
        file=file,
        policy_name=policy.name,
        days_since=days_since,
        threshold=threshold,
        priority=priority,
        needs_recertification=needs_recert,
        next_due_date=last_modified + timedelta(days=threshold),
    )


class Checker:
    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger(__name__)

    def check(self, files: list[FileRecord], policies: list[Policy], now: datetime) -> list[Verdict]:
        """Evaluate every file that matches an enabled policy; others are dropped."""
        self.logger.info("Checking %d file(s) for recertification", len(files))
        verdicts: list[Verdict] = []
        for file in files:
            policy = match_policy(policies, file.path)
            if policy is None:
                self.logger.debug("%s did not match any enabled policy", file.path)
                continue
            if file.last_modified is None:
                self.logger.warning(
                    "%s has no known modification time; treating it as due for recertification", file.path
                )
            verdict = evaluate(file, policy, now)
            self.logger.debug(
                "%s: policy=%s days_since=%d threshold=%d priority=%s needs_recert=%s",
                file.path,
                policy.name,
                verdict.days_since,
                verdict.threshold,
                verdict.priority.value,
                verdict.needs_recertification,
            )
            verdicts.append(verdict)
        self.logger.info(
            "Recertification check complete: %d evaluated, %d stale",
            len(verdicts),
            sum(1 for v in verdicts if v.needs_recertification),
        )
        return verdicts
