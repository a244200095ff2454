"""Abstract audit sink interface.

The CLI depends on AuditSink, not on a concrete backend, so sinks are
swappable without touching the engine or the commands.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ice_audit.models import AuditEvent


class AuditSink(ABC):
    """Pluggable persistence layer for audit events.

    ``record`` may be called from several worker threads at once;
    implementations serialise their own writes.
    """

    @abstractmethod
    def record(self, event: AuditEvent) -> None:
        """Persist one audit event."""

    @abstractmethod
    def list_events(self, run_id: str | None = None) -> list[AuditEvent]:
        """Return stored events in chronological order, optionally for one run.

        Returns an empty list if nothing was recorded.
        """

    def close(self) -> None:
        """Release any resources held by the sink. Default is a no-op."""
