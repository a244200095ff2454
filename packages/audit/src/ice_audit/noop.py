"""No-op sink, the default when ``audit.enabled`` is false."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ice_audit.base import AuditSink

if TYPE_CHECKING:
    from ice_audit.models import AuditEvent


class NoOpSink(AuditSink):
    def record(self, event: AuditEvent) -> None:
        pass

    def list_events(self, run_id: str | None = None) -> list[AuditEvent]:
        return []
