"""Audit event model.

Kept apart from ice_core so the core never learns how events are persisted;
the engine only calls an ``on_event`` hook.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field

EVENT_TYPES = (
    "run_start",
    "run_end",
    "scan_complete",
    "enrich_complete",
    "check_complete",
    "group_complete",
    "pr_created",
    "pr_exists",
    "pr_error",
    "error",
)


@dataclass
class AuditEvent:
    """One line of the recertification audit trail."""

    timestamp: str  # ISO-8601 UTC timestamp
    run_id: str
    event_type: str
    message: str
    details: dict = field(default_factory=dict)
    error: str | None = None
    repository: str = ""

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> AuditEvent:
        return cls(
            timestamp=data.get("timestamp", ""),
            run_id=data.get("run_id", ""),
            event_type=data.get("event_type", ""),
            message=data.get("message", ""),
            details=data.get("details") or {},
            error=data.get("error"),
            repository=data.get("repository", ""),
        )
