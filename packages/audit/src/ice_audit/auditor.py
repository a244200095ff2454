"""Bridge between the engine's event hook and an AuditSink."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from ice_audit.base import AuditSink
from ice_audit.models import EVENT_TYPES, AuditEvent

logger = logging.getLogger(__name__)


class Auditor:
    """Stamps events with time, run id and repository before handing them to a sink.

    Sink failures are logged and dropped; auditing never aborts a run.
    """

    def __init__(self, sink: AuditSink, repository: str = "", run_id: str = ""):
        self.sink = sink
        self.repository = repository
        self.run_id = run_id

    def log_event(self, event_type: str, message: str, details: dict | None = None, error: str | None = None) -> None:
        if event_type not in EVENT_TYPES:
            logger.warning("Unknown audit event type %r", event_type)
        details = dict(details or {})
        if event_type == "run_start" and details.get("run_id"):
            self.run_id = details["run_id"]
        event = AuditEvent(
            timestamp=datetime.now(timezone.utc).isoformat(),
            run_id=self.run_id,
            event_type=event_type,
            message=message,
            details=details,
            error=error,
            repository=self.repository,
        )
        try:
            self.sink.record(event)
        except Exception as e:
            logger.warning("Failed to record audit event %s: %s", event_type, e)
